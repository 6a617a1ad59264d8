"""
订单API集成测试
测试订单相关的API端点
"""


def create_order(client, headers, meal_id, quantity=1, **extra):
    return client.post(
        "/api/v1/orders",
        headers=headers,
        json={"items": [{"meal_id": meal_id, "quantity": quantity}], **extra},
    )


class TestOrdersAPI:
    """订单API测试"""

    def test_create_order_success(self, client, auth_headers, sample_meal, sample_slot):
        """测试成功创建订单"""
        response = create_order(client, auth_headers, sample_meal.meal_id, 2,
                                time_slot_id=sample_slot.slot_id, special_instructions="不要辣")

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        order = data["data"]["order"]
        assert order["total_price_cents"] == 5000
        assert order["status"] == "pending"
        assert order["payment_status"] == "paid"
        assert order["special_instructions"] == "不要辣"
        assert order["items"][0]["meal"]["name"] == "鸡肉饭"
        assert data["data"]["budget_warning"] is None

    def test_requires_authentication(self, client, sample_meal):
        """测试未登录下单返回401"""
        response = create_order(client, {}, sample_meal.meal_id)

        assert response.status_code == 401
        assert response.json()["error"] == "AuthenticationError"

    def test_invalid_token(self, client, sample_meal):
        """测试无效令牌被拒绝"""
        response = create_order(client, {"Authorization": "Bearer nonsense"}, sample_meal.meal_id)
        assert response.status_code == 401
        assert response.json()["error_code"] == "INVALID_TOKEN"

    def test_insufficient_balance(self, client, auth_headers, sample_meal):
        """测试余额不足创建订单"""
        response = create_order(client, auth_headers, sample_meal.meal_id, 5)

        assert response.status_code == 409
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "ConflictError"
        assert body["error_code"] == "INSUFFICIENT_BALANCE"
        assert body["details"]["required_cents"] == 12500

    def test_empty_order(self, client, auth_headers):
        """测试空订单返回400"""
        response = client.post("/api/v1/orders", headers=auth_headers, json={"items": []})
        assert response.status_code == 400
        assert response.json()["error_code"] == "EMPTY_ORDER"

    def test_invalid_quantity(self, client, auth_headers, sample_meal):
        """测试数量非法时返回校验错误"""
        response = create_order(client, auth_headers, sample_meal.meal_id, 0)

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "ValidationError"
        assert body["details"]["validation_errors"]

    def test_slot_full(self, client, auth_headers, salad_meal, sample_slot):
        """测试取餐时段满员返回409"""
        for _ in range(2):
            create_order(client, auth_headers, salad_meal.meal_id, time_slot_id=sample_slot.slot_id)
        response = create_order(client, auth_headers, salad_meal.meal_id, time_slot_id=sample_slot.slot_id)

        assert response.status_code == 409
        assert response.json()["error_code"] == "SLOT_FULL"

    def test_unknown_meal(self, client, auth_headers):
        """测试不存在的餐品返回404"""
        response = create_order(client, auth_headers, 999)
        assert response.status_code == 404
        assert response.json()["error_code"] == "MEAL_NOT_FOUND"

    def test_my_orders_pagination(self, client, auth_headers, salad_meal):
        """测试我的订单分页"""
        for _ in range(3):
            create_order(client, auth_headers, salad_meal.meal_id)

        response = client.get("/api/v1/orders/my?page=1&limit=2", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert len(body["data"]) == 2
        assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}

    def test_get_order_visibility(self, client, auth_headers, other_headers, staff_headers, sample_meal):
        """测试订单详情仅本人和员工可见"""
        order_id = create_order(client, auth_headers, sample_meal.meal_id).json()["data"]["order"]["order_id"]

        assert client.get(f"/api/v1/orders/{order_id}", headers=auth_headers).status_code == 200
        assert client.get(f"/api/v1/orders/{order_id}", headers=staff_headers).status_code == 200
        assert client.get(f"/api/v1/orders/{order_id}", headers=other_headers).status_code == 403
        assert client.get("/api/v1/orders/999", headers=auth_headers).status_code == 404

    def test_cancel_order(self, client, auth_headers, sample_meal):
        """测试取消订单并退款，重复取消被拒绝"""
        order_id = create_order(client, auth_headers, sample_meal.meal_id).json()["data"]["order"]["order_id"]

        response = client.post(f"/api/v1/orders/{order_id}/cancel", headers=auth_headers,
                               json={"reason": "临时有事"})

        assert response.status_code == 200
        order = response.json()["data"]
        assert order["status"] == "cancelled"
        assert order["payment_status"] == "refunded"
        assert order["cancellation_reason"] == "临时有事"

        again = client.post(f"/api/v1/orders/{order_id}/cancel", headers=auth_headers)
        assert again.status_code == 409
        assert again.json()["error_code"] == "CANNOT_CANCEL"


class TestStaffOrdersAPI:
    """员工订单API测试"""

    def test_student_cannot_list_all_orders(self, client, auth_headers):
        """测试学生无权查看全部订单"""
        response = client.get("/api/v1/orders", headers=auth_headers)
        assert response.status_code == 403
        assert response.json()["error_code"] == "STAFF_REQUIRED"

    def test_list_all_orders(self, client, auth_headers, other_headers, staff_headers, salad_meal):
        """测试员工按状态和日期筛选订单"""
        create_order(client, auth_headers, salad_meal.meal_id)
        create_order(client, other_headers, salad_meal.meal_id)

        response = client.get("/api/v1/orders?status=pending&date=2025-03-12", headers=staff_headers)

        assert response.status_code == 200
        assert response.json()["pagination"]["total"] == 2

    def test_status_flow_and_collect(self, client, auth_headers, staff_headers, sample_meal):
        """测试状态推进到待取餐后凭取餐码取餐"""
        created = create_order(client, auth_headers, sample_meal.meal_id).json()["data"]["order"]
        order_id = created["order_id"]

        for status in ("confirmed", "preparing", "ready"):
            response = client.patch(f"/api/v1/orders/{order_id}/status", headers=staff_headers,
                                    json={"status": status})
            assert response.status_code == 200
            assert response.json()["data"]["status"] == status

        response = client.post(f"/api/v1/orders/{order_id}/collect", headers=staff_headers,
                               json={"pickup_token": created["qr_code"]})

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "completed"

    def test_invalid_status_transition(self, client, auth_headers, staff_headers, sample_meal):
        """测试非法状态流转返回409"""
        order_id = create_order(client, auth_headers, sample_meal.meal_id).json()["data"]["order"]["order_id"]

        response = client.patch(f"/api/v1/orders/{order_id}/status", headers=staff_headers,
                                json={"status": "completed"})

        assert response.status_code == 409
        assert response.json()["error_code"] == "INVALID_STATUS_TRANSITION"

    def test_unknown_status_value(self, client, auth_headers, staff_headers, sample_meal):
        """测试未知状态值返回400"""
        order_id = create_order(client, auth_headers, sample_meal.meal_id).json()["data"]["order"]["order_id"]
        response = client.patch(f"/api/v1/orders/{order_id}/status", headers=staff_headers,
                                json={"status": "shipped"})
        assert response.status_code == 400

    def test_collect_not_ready(self, client, auth_headers, staff_headers, sample_meal):
        """测试未备好的订单不能取餐"""
        order_id = create_order(client, auth_headers, sample_meal.meal_id).json()["data"]["order"]["order_id"]

        response = client.post(f"/api/v1/orders/{order_id}/collect", headers=staff_headers)

        assert response.status_code == 409
        assert response.json()["error_code"] == "NOT_READY"

    def test_collect_with_forged_token(self, client, auth_headers, staff_headers, sample_meal):
        """测试伪造取餐码被拒绝"""
        order_id = create_order(client, auth_headers, sample_meal.meal_id).json()["data"]["order"]["order_id"]
        response = client.post(f"/api/v1/orders/{order_id}/collect", headers=staff_headers,
                               json={"pickup_token": "forged"})
        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_PICKUP_TOKEN"

    def test_today_stats(self, client, auth_headers, staff_headers, sample_meal):
        """测试当日订单统计"""
        create_order(client, auth_headers, sample_meal.meal_id)

        response = client.get("/api/v1/orders/stats/today", headers=staff_headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total_orders"] == 1
        assert data["total_revenue_cents"] == 2500


class TestAppEndpoints:
    def test_health(self, client):
        """测试健康检查"""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root(self, client):
        """测试根路径返回服务信息"""
        assert client.get("/").json()["name"] == "Campus Cafeteria API (Test)"
