"""
健康统计、餐品、用户与管理API集成测试
"""


class TestWellnessAPI:
    """健康统计API测试"""

    def test_my_wellness_after_order(self, client, auth_headers, sample_meal):
        """测试下单后当日健康统计"""
        client.post("/api/v1/orders", headers=auth_headers,
                    json={"items": [{"meal_id": sample_meal.meal_id, "quantity": 1}]})

        response = client.get("/api/v1/wellness/me", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["date"] == "2025-03-12"
        assert data["daily"]["daily_calories"] == 650
        assert data["monthly"]["total_orders"] == 1

    def test_update_goals(self, client, auth_headers):
        """测试更新每日目标"""
        response = client.put("/api/v1/wellness/me/goals", headers=auth_headers,
                              json={"calorie_goal": 2000})
        assert response.status_code == 200
        assert response.json()["data"]["calorie_goal"] == 2000

    def test_monthly_access_rules(self, client, auth_headers, staff_headers, sample_user, other_user):
        """测试月度统计的访问权限"""
        own = client.get(f"/api/v1/wellness/users/{sample_user.id}/monthly", headers=auth_headers)
        other = client.get(f"/api/v1/wellness/users/{other_user.id}/monthly", headers=auth_headers)
        staff = client.get(f"/api/v1/wellness/users/{other_user.id}/monthly?year=2025&month=2",
                           headers=staff_headers)

        assert own.status_code == 200
        assert own.json()["data"]["month"] == 3
        assert other.status_code == 403
        assert staff.status_code == 200
        assert staff.json()["data"]["month"] == 2

    def test_staff_view_of_user(self, client, auth_headers, staff_headers, sample_user):
        """测试员工查看学生健康统计"""
        assert client.get(f"/api/v1/wellness/users/{sample_user.id}", headers=auth_headers).status_code == 403
        assert client.get(f"/api/v1/wellness/users/{sample_user.id}", headers=staff_headers).status_code == 200
        assert client.get("/api/v1/wellness/users/999", headers=staff_headers).status_code == 404


class TestMealsAPI:
    """餐品与时段API测试"""

    def test_list_meals(self, client, auth_headers, sample_meal, salad_meal):
        """测试按分类列出餐品"""
        response = client.get("/api/v1/meals?category=Salad", headers=auth_headers)
        assert response.status_code == 200
        assert [m["name"] for m in response.json()["data"]] == ["鸡胸肉沙拉"]

    def test_staff_manages_meals(self, client, auth_headers, staff_headers):
        """测试员工创建、修改和下架餐品"""
        payload = {"name": "番茄炒蛋", "price_cents": 1500, "available_days": [1, 2, 3]}
        assert client.post("/api/v1/meals", headers=auth_headers, json=payload).status_code == 403

        created = client.post("/api/v1/meals", headers=staff_headers, json=payload)
        assert created.status_code == 201
        meal_id = created.json()["data"]["meal_id"]

        updated = client.put(f"/api/v1/meals/{meal_id}", headers=staff_headers, json={"price_cents": 1600})
        assert updated.json()["data"]["price_cents"] == 1600
        assert updated.json()["data"]["name"] == "番茄炒蛋"

        toggled = client.patch(f"/api/v1/meals/{meal_id}/toggle", headers=staff_headers)
        assert toggled.json()["data"]["is_available"] is False

    def test_invalid_weekday(self, client, staff_headers):
        """测试非法星期被拒绝"""
        response = client.post("/api/v1/meals", headers=staff_headers,
                               json={"name": "错误", "price_cents": 100, "available_days": [7]})
        assert response.status_code == 400

    def test_time_slots(self, client, auth_headers, staff_headers, sample_slot):
        """测试取餐时段列表与创建"""
        listed = client.get("/api/v1/time-slots", headers=auth_headers).json()["data"]
        assert listed[0]["remaining_capacity"] == 2

        created = client.post("/api/v1/time-slots", headers=staff_headers,
                              json={"start_time": "18:00", "end_time": "18:30", "max_orders": 10})
        assert created.status_code == 201

        bad = client.post("/api/v1/time-slots", headers=staff_headers,
                          json={"start_time": "25:00", "end_time": "18:30"})
        assert bad.status_code == 400


class TestUsersAndAdminAPI:
    """用户与管理API测试"""

    def test_profile(self, client, auth_headers):
        """测试获取个人资料"""
        data = client.get("/api/v1/users/me", headers=auth_headers).json()["data"]
        assert data["user"]["email"] == "student@campus.edu"
        assert data["wallet"]["balance_cents"] == 10000

    def test_onboarding(self, client, auth_headers):
        """测试完成资料设置"""
        response = client.post("/api/v1/users/me/onboarding", headers=auth_headers,
                               json={"nutritional_goal": "High Energy", "monthly_budget_cap_cents": 20000})
        assert response.status_code == 200
        assert response.json()["data"]["user"]["nutritional_goal"] == "High Energy"

    def test_consistency_admin_only(self, client, staff_headers, admin_headers):
        """测试一致性检查仅限管理员"""
        assert client.get("/api/v1/admin/consistency", headers=staff_headers).status_code == 403

        response = client.get("/api/v1/admin/consistency", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["data"]["summary"]["status"] == "healthy"

    def test_run_reconciliation(self, client, admin_headers):
        """测试手动触发对账"""
        response = client.post("/api/v1/admin/reconciliation/run", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["data"]["running"] is False
