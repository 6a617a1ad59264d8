"""
订单相关数据模型

订单状态机：
    pending -> confirmed -> preparing -> ready -> completed
    pending / confirmed / preparing -> cancelled
"""

from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Set

from pydantic import Field

from .base import BaseEntity, TimestampMixin


class OrderStatus(str, Enum):
    """订单状态枚举"""
    PENDING = "pending"         # 待确认
    CONFIRMED = "confirmed"     # 已确认
    PREPARING = "preparing"     # 制作中
    READY = "ready"             # 待取餐
    COMPLETED = "completed"     # 已完成
    CANCELLED = "cancelled"     # 已取消


class PaymentMethod(str, Enum):
    """支付方式枚举"""
    WALLET = "wallet"
    CASH_ON_DELIVERY = "cash_on_delivery"


class PaymentStatus(str, Enum):
    """支付状态枚举"""
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


# 合法的状态转换
ORDER_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.READY, OrderStatus.CANCELLED},
    OrderStatus.READY: {OrderStatus.COMPLETED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
}

CANCELLABLE_STATUSES = frozenset(
    s.value for s in (OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PREPARING)
)


def can_transition(current: str, target: str) -> bool:
    """状态转换是否合法"""
    try:
        return OrderStatus(target) in ORDER_TRANSITIONS[OrderStatus(current)]
    except ValueError:
        return False


def format_order_number(created_at: datetime, order_id: int) -> str:
    """订单号：ORD-YYYYMMDD-NNNNNN"""
    return f"ORD-{created_at:%Y%m%d}-{order_id:06d}"


class OrderItem(BaseEntity):
    """订单行，价格与营养为下单时快照"""
    meal_id: int
    meal_name: Optional[str] = None
    quantity: int = Field(..., ge=1)
    unit_price_cents: int = Field(..., ge=0)
    calories: float = 0
    proteins: float = 0
    carbohydrates: float = 0

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity


class Order(BaseEntity, TimestampMixin):
    """订单完整模型"""
    order_id: int = Field(..., description="订单ID")
    order_number: Optional[str] = Field(None, description="订单号")
    student_id: int = Field(..., description="下单学生ID")
    items: List[OrderItem] = Field(default_factory=list)
    total_price_cents: int = Field(..., description="总价（分）")
    total_calories: float = 0
    total_proteins: float = 0
    total_carbs: float = 0
    time_slot_id: Optional[int] = None
    pickup_time: Optional[datetime] = None
    pickup_time_end: Optional[datetime] = None
    payment_method: PaymentMethod
    payment_status: PaymentStatus = PaymentStatus.PENDING
    status: OrderStatus = OrderStatus.PENDING
    wellness_processed: bool = False
    wellness_date: Optional[date] = None
    qr_code: Optional[str] = None
    special_instructions: Optional[str] = ""
    cancellation_reason: Optional[str] = None
    notification_ready_sent: bool = False
    collected_by: Optional[int] = None
    collected_at: Optional[datetime] = None

    def is_countable(self) -> bool:
        """是否计入健康统计：已支付或已完成"""
        return is_countable(self.payment_status, self.status)

    def can_be_cancelled(self) -> bool:
        return OrderStatus(self.status).value in CANCELLABLE_STATUSES


def is_countable(payment_status: str, status: str) -> bool:
    return payment_status == PaymentStatus.PAID or status == OrderStatus.COMPLETED


# is_countable 的 SQL 形式，供存储层的条件更新和扫描使用
COUNTABLE_ORDER_SQL = (
    f"(payment_status = '{PaymentStatus.PAID.value}' OR status = '{OrderStatus.COMPLETED.value}')"
)
