"""
数据一致性检查测试
"""

from ..schemas.order import OrderCreateRequest, OrderItemRequest


def issue_types(result):
    return {i["type"] for i in result["issues"]}


class TestConsistencyCheck:
    """一致性检查测试"""

    def test_healthy_after_normal_operations(self, services, sample_user, sample_meal, sample_slot):
        """测试正常业务后数据一致"""
        services.orders.create_order(sample_user.id, OrderCreateRequest(
            items=[OrderItemRequest(meal_id=sample_meal.meal_id, quantity=1)],
            time_slot_id=sample_slot.slot_id,
        ))

        result = services.consistency.check_data_consistency()

        assert result["issues"] == []
        assert result["summary"]["status"] == "healthy"
        assert result["statistics"]["orders"] == {"pending": 1}
        assert result["statistics"]["transactions"] == 2

    def test_detects_ledger_mismatch(self, services, sample_user, test_db):
        """测试发现流水与余额不符"""
        test_db.execute("UPDATE wallets SET balance_cents = balance_cents + 100 WHERE user_id=?",
                        [sample_user.id])

        result = services.consistency.check_data_consistency()

        assert "ledger_mismatch" in issue_types(result)
        mismatch = result["issues"][0]["details"]
        assert mismatch["balance_cents"] == 10100
        assert mismatch["ledger_cents"] == 10000

    def test_detects_slot_counter_drift(self, services, sample_user, sample_meal, sample_slot, test_db):
        """测试发现时段计数偏差"""
        services.orders.create_order(sample_user.id, OrderCreateRequest(
            items=[OrderItemRequest(meal_id=sample_meal.meal_id, quantity=1)],
            time_slot_id=sample_slot.slot_id,
        ))
        test_db.execute("UPDATE time_slots SET current_orders = 0 WHERE slot_id=?", [sample_slot.slot_id])

        assert "slot_counter_low" in issue_types(services.consistency.check_data_consistency())

    def test_detects_paid_order_without_debit(self, services, sample_user, sample_meal, test_db):
        """测试发现无扣款记录的已支付订单"""
        result = services.orders.create_order(sample_user.id, OrderCreateRequest(
            items=[OrderItemRequest(meal_id=sample_meal.meal_id, quantity=1)],
        ))
        test_db.execute("DELETE FROM transactions WHERE order_id=?", [result["order"]["order_id"]])

        types = issue_types(services.consistency.check_data_consistency())
        assert "paid_without_debit" in types
        assert "ledger_mismatch" in types

    def test_warnings(self, services, sample_user, sample_meal, test_db, monkeypatch):
        """测试无钱包用户和待对账订单产生警告"""
        test_db.execute("INSERT INTO users(email, name) VALUES ('nowallet@campus.edu', '无钱包')")
        monkeypatch.setattr(services.wellness, "apply_order", lambda *a, **kw: 1 / 0)
        services.orders.create_order(sample_user.id, OrderCreateRequest(
            items=[OrderItemRequest(meal_id=sample_meal.meal_id, quantity=1)],
        ))

        result = services.consistency.check_data_consistency()
        assert {w["type"] for w in result["warnings"]} == {"missing_wallet", "wellness_pending"}

        quiet = services.consistency.check_data_consistency(include_warnings=False)
        assert quiet["warnings"] == []

    def test_check_is_logged(self, services, admin_user, test_db):
        """测试一致性检查写入日志"""
        services.consistency.check_data_consistency(operator_id=admin_user.id)
        row = test_db.fetch_dict("SELECT actor_id FROM logs WHERE action='consistency_check'")
        assert row["actor_id"] == admin_user.id
