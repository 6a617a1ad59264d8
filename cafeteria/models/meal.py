"""
餐品与取餐时段数据模型
"""

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .base import BaseEntity, TimestampMixin


def day_of_week(d: date) -> int:
    """星期编号，0为周日，6为周六"""
    return (d.weekday() + 1) % 7


def parse_days(value: str) -> List[int]:
    """'1,2,3' -> [1, 2, 3]"""
    return [int(p) for p in value.split(",") if p.strip()]


def format_days(days: List[int]) -> str:
    return ",".join(str(d) for d in sorted(set(days)))


class MealCategory(str, Enum):
    """餐品分类枚举"""
    MAIN_COURSE = "Main Course"
    SIDE_DISH = "Side Dish"
    DESSERT = "Dessert"
    BEVERAGE = "Beverage"
    SNACK = "Snack"
    SALAD = "Salad"
    OTHER = "Other"


class NutritionalInfo(BaseModel):
    """营养成分（每份）"""
    calories: float = Field(0, ge=0, description="热量 kcal")
    proteins: float = Field(0, ge=0, description="蛋白质 g")
    carbohydrates: float = Field(0, ge=0, description="碳水 g")
    fats: float = Field(0, ge=0, description="脂肪 g")
    fiber: float = Field(0, ge=0, description="膳食纤维 g")


class Meal(BaseEntity, TimestampMixin):
    """餐品完整模型"""
    meal_id: int = Field(..., description="餐品ID")
    name: str = Field(..., description="名称")
    description: Optional[str] = Field("", description="描述")
    price_cents: int = Field(..., ge=0, description="售价（分）")
    cost_cents: int = Field(0, ge=0, description="成本（分）")
    nutritional_info: NutritionalInfo = Field(default_factory=NutritionalInfo)
    category: MealCategory = Field(MealCategory.MAIN_COURSE, description="分类")
    is_available: bool = Field(True, description="总开关")
    available_days: List[int] = Field(default_factory=lambda: [1, 2, 3, 4, 5], description="可售星期")
    order_count: int = Field(0, description="累计下单次数")
    created_by: Optional[int] = None

    @classmethod
    def from_row(cls, row: dict) -> "Meal":
        data = dict(row)
        data["nutritional_info"] = NutritionalInfo(
            calories=data.pop("calories", 0) or 0,
            proteins=data.pop("proteins", 0) or 0,
            carbohydrates=data.pop("carbohydrates", 0) or 0,
            fats=data.pop("fats", 0) or 0,
            fiber=data.pop("fiber", 0) or 0,
        )
        days = data.get("available_days")
        if isinstance(days, str):
            data["available_days"] = parse_days(days)
        elif days is None:
            data["available_days"] = []
        return cls(**data)

    def is_available_on(self, d: date) -> bool:
        """指定日期是否可订：总开关打开且当天在可售星期内"""
        return bool(self.is_available) and day_of_week(d) in self.available_days


class TimeSlot(BaseEntity):
    """取餐时段"""
    slot_id: int = Field(..., description="时段ID")
    start_time: str = Field(..., description="开始时间 HH:MM")
    end_time: str = Field(..., description="结束时间 HH:MM")
    slot_date: Optional[date] = Field(None, description="指定日期，为空表示按星期循环")
    day_of_week: Optional[int] = Field(None, ge=0, le=6, description="循环星期")
    max_orders: int = Field(50, ge=1, description="最大订单数")
    current_orders: int = Field(0, ge=0, description="已预订数")
    is_available: bool = Field(True, description="是否开放")
    description: Optional[str] = ""
    created_at: Optional[datetime] = None

    @property
    def is_full(self) -> bool:
        return self.current_orders >= self.max_orders

    @property
    def remaining_capacity(self) -> int:
        return max(0, self.max_orders - self.current_orders)

    def is_bookable(self) -> bool:
        return bool(self.is_available) and not self.is_full

    def pickup_start(self, today: date) -> datetime:
        """取餐开始时间：指定日期的时段用其日期，循环时段用当天"""
        hour, minute = (int(p) for p in self.start_time.split(":"))
        return datetime.combine(self.slot_date or today, datetime.min.time()).replace(hour=hour, minute=minute)
