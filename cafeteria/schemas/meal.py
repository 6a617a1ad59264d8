"""
餐品与取餐时段相关的请求模式
"""

from datetime import date
from typing import Annotated, List, Optional

from pydantic import AfterValidator, BaseModel, Field

from ..models.meal import MealCategory, NutritionalInfo


def _validate_days(v):
    if v is None:
        return v
    if any(d < 0 or d > 6 for d in v):
        raise ValueError("星期编号必须在0-6之间")
    return sorted(set(v))


Weekdays = Annotated[List[int], AfterValidator(_validate_days)]


class MealCreateRequest(BaseModel):
    """餐品创建请求"""
    name: str = Field(..., min_length=1, max_length=200, description="名称")
    description: Optional[str] = Field("", max_length=1000, description="描述")
    price_cents: int = Field(..., ge=0, description="售价（分）")
    cost_cents: int = Field(0, ge=0, description="成本（分）")
    nutritional_info: NutritionalInfo = Field(default_factory=NutritionalInfo)
    category: MealCategory = Field(MealCategory.MAIN_COURSE)
    is_available: bool = True
    available_days: Weekdays = Field(default_factory=lambda: [1, 2, 3, 4, 5], description="可售星期，0为周日")


class MealUpdateRequest(BaseModel):
    """餐品更新请求，未提供的字段保持不变"""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    price_cents: Optional[int] = Field(None, ge=0)
    cost_cents: Optional[int] = Field(None, ge=0)
    nutritional_info: Optional[NutritionalInfo] = None
    category: Optional[MealCategory] = None
    is_available: Optional[bool] = None
    available_days: Optional[Weekdays] = None


class TimeSlotCreateRequest(BaseModel):
    """取餐时段创建请求"""
    start_time: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$", description="开始时间 HH:MM")
    end_time: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$", description="结束时间 HH:MM")
    slot_date: Optional[date] = Field(None, description="指定日期")
    day_of_week: Optional[int] = Field(None, ge=0, le=6, description="循环星期")
    max_orders: int = Field(50, ge=1, description="最大订单数")
    description: Optional[str] = Field("", max_length=200)
