"""
健康统计数据模型
"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field

from .base import BaseEntity, TimestampMixin


class WellnessTracking(BaseEntity, TimestampMixin):
    """用户单日健康统计记录，(user_id, date) 唯一"""
    tracking_id: int
    user_id: int
    date: date
    day: int
    month: int
    year: int
    daily_calories: float = 0
    daily_proteins: float = 0
    daily_carbs: float = 0
    daily_spent_cents: int = 0
    monthly_calories: float = 0
    monthly_proteins: float = 0
    monthly_spent_cents: int = 0
    orders_completed_today: int = 0
    calorie_goal: Optional[float] = None
    protein_goal: Optional[float] = None
    carb_goal: Optional[float] = None


class MonthlyStats(BaseModel):
    """月度汇总，由日记录实时求和得到"""
    user_id: int
    year: int
    month: int
    total_calories: float = 0
    total_proteins: float = 0
    total_carbs: float = 0
    total_spent_cents: int = 0
    total_orders: int = 0
    days_with_orders: int = 0
    average_daily_calories: float = Field(0, description="有订单日的平均热量")
