import math
from datetime import date, datetime

import pytest

from ..models.meal import Meal, TimeSlot, day_of_week, format_days, parse_days
from ..models.order import (
    COUNTABLE_ORDER_SQL,
    Order,
    OrderStatus,
    can_transition,
    format_order_number,
    is_countable,
)
from ..models.user import Principal
from ..models.wallet import Wallet


class TestOrderRules:
    """订单状态机与计入规则"""

    @pytest.mark.parametrize("current,target", [
        ("pending", "confirmed"),
        ("confirmed", "preparing"),
        ("preparing", "ready"),
        ("ready", "completed"),
        ("pending", "cancelled"),
        ("preparing", "cancelled"),
    ])
    def test_allowed_transitions(self, current, target):
        """测试允许的状态流转"""
        assert can_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        ("pending", "ready"),
        ("ready", "cancelled"),
        ("completed", "pending"),
        ("cancelled", "confirmed"),
        ("pending", "shipped"),
    ])
    def test_rejected_transitions(self, current, target):
        """测试拒绝的状态流转"""
        assert not can_transition(current, target)

    def test_countable(self):
        """测试计入健康统计的判定"""
        assert is_countable("paid", "pending")
        assert is_countable("pending", "completed")
        assert not is_countable("pending", "ready")
        assert not is_countable("refunded", "cancelled")
        assert "paid" in COUNTABLE_ORDER_SQL and "completed" in COUNTABLE_ORDER_SQL

    def test_order_number_format(self):
        """测试订单号格式"""
        assert format_order_number(datetime(2025, 3, 12, 9, 0), 42) == "ORD-20250312-000042"

    def test_order_helpers(self):
        """测试订单可取消判定"""
        order = Order(
            order_id=1, student_id=2, total_price_cents=100, payment_method="wallet",
            status=OrderStatus.CONFIRMED, created_at=datetime(2025, 3, 12, 9, 0),
        )
        assert order.status == "confirmed"
        assert order.can_be_cancelled()

        order.status = "ready"
        assert not order.can_be_cancelled()


class TestCatalogModels:
    """餐品与时段模型"""

    def test_day_of_week_starts_on_sunday(self):
        """测试星期从周日开始计数"""
        assert day_of_week(date(2025, 3, 16)) == 0
        assert day_of_week(date(2025, 3, 12)) == 3
        assert day_of_week(date(2025, 3, 15)) == 6

    def test_days_text_format(self):
        """测试可售星期的文本存储格式"""
        assert parse_days("1,2,3") == [1, 2, 3]
        assert parse_days("") == []
        assert format_days([5, 1, 1, 0]) == "0,1,5"

    def test_meal_from_row(self):
        """测试从数据库行构建餐品"""
        meal = Meal.from_row({
            "meal_id": 1, "name": "汤面", "price_cents": 900, "calories": 400, "proteins": None,
            "carbohydrates": 60, "fats": 5, "fiber": 2, "available_days": "0,6",
            "is_available": True,
        })
        assert meal.nutritional_info.calories == 400
        assert meal.nutritional_info.proteins == 0
        assert meal.is_available_on(date(2025, 3, 16))
        assert not meal.is_available_on(date(2025, 3, 12))

    def test_time_slot_capacity_and_pickup(self):
        """测试时段容量与取餐开始时间"""
        slot = TimeSlot(slot_id=1, start_time="12:15", end_time="12:45", max_orders=3, current_orders=3)
        assert slot.is_full
        assert not slot.is_bookable()
        assert slot.pickup_start(date(2025, 3, 12)) == datetime(2025, 3, 12, 12, 15)

        dated = TimeSlot(slot_id=2, start_time="08:00", end_time="08:30", slot_date=date(2025, 4, 1))
        assert dated.pickup_start(date(2025, 3, 12)) == datetime(2025, 4, 1, 8, 0)


class TestWalletModel:
    """钱包模型"""

    def test_unlimited_budget(self):
        """测试预算为零表示不限"""
        wallet = Wallet(wallet_id=1, user_id=1, balance_cents=100, current_month_spent_cents=99999)
        assert wallet.remaining_budget_cents() == math.inf
        assert not wallet.exceeds_budget(10 ** 9)

    def test_remaining_budget_floor(self):
        """测试剩余预算不小于零"""
        wallet = Wallet(wallet_id=1, user_id=1, monthly_budget_cap_cents=1000, current_month_spent_cents=1500)
        assert wallet.remaining_budget_cents() == 0
        assert wallet.budget_usage_percentage() == 150.0

    def test_can_afford(self):
        """测试余额是否足够"""
        wallet = Wallet(wallet_id=1, user_id=1, balance_cents=500)
        assert wallet.can_afford(500)
        assert not wallet.can_afford(501)


class TestPrincipal:
    def test_staff_roles(self):
        """测试员工角色判定"""
        assert Principal(id=1, role="cafeteria_staff").is_staff
        assert Principal(id=1, role="admin").is_staff
        assert not Principal(id=1, role="student").is_staff
