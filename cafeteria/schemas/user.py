"""
用户相关的请求模式
"""

from pydantic import BaseModel, Field

from ..models.user import NutritionalGoal


class OnboardingRequest(BaseModel):
    """完成资料设置请求"""
    nutritional_goal: NutritionalGoal = Field(NutritionalGoal.NONE, description="营养目标")
    monthly_budget_cap_cents: int = Field(0, ge=0, description="月度预算上限（分），0为不限")
