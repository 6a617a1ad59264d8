"""
健康统计相关的请求模式
"""

from typing import Optional

from pydantic import BaseModel, Field


class DailyGoalsRequest(BaseModel):
    """每日营养目标"""
    calorie_goal: Optional[float] = Field(None, ge=0, description="热量目标 kcal")
    protein_goal: Optional[float] = Field(None, ge=0, description="蛋白质目标 g")
    carb_goal: Optional[float] = Field(None, ge=0, description="碳水目标 g")
