"""
用户相关数据模型
"""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import Field

from .base import BaseEntity, TimestampMixin


class Role(str, Enum):
    """用户角色枚举"""
    STUDENT = "student"                  # 学生
    CAFETERIA_STAFF = "cafeteria_staff"  # 食堂员工
    ADMIN = "admin"                      # 管理员


STAFF_ROLES = (Role.CAFETERIA_STAFF, Role.ADMIN)


class NutritionalGoal(str, Enum):
    """营养目标枚举"""
    HIGH_ENERGY = "High Energy"
    BALANCED = "Balanced"
    LIGHT_FOCUSED = "Light Focused"
    NONE = "None"


class User(BaseEntity, TimestampMixin):
    """用户完整模型"""
    id: int = Field(..., description="用户ID")
    email: str = Field(..., description="邮箱")
    name: Optional[str] = Field(None, description="姓名")
    role: Role = Field(Role.STUDENT, description="角色")
    onboarding_completed: bool = Field(False, description="是否完成资料设置")
    nutritional_goal: NutritionalGoal = Field(NutritionalGoal.NONE, description="营养目标")
    daily_calorie_intake: float = Field(0, description="今日已摄入热量")
    daily_protein_intake: float = Field(0, description="今日已摄入蛋白质")
    last_intake_reset: Optional[date] = Field(None, description="每日摄入最近重置日期")


class Principal(BaseEntity):
    """已认证的请求身份"""
    id: int
    email: str = ""
    role: Role = Role.STUDENT

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES
