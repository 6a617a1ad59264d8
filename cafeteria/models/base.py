"""
基础数据模型
定义通用的模型基类和常用字段
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class TimestampMixin(BaseModel):
    """时间戳混入类"""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BaseEntity(BaseModel):
    """基础实体模型"""

    model_config = {"from_attributes": True, "use_enum_values": True}


class PaginationParams(BaseModel):
    """分页参数（page 从1开始）"""
    page: int = Field(default=1, ge=1, description="页码")
    limit: int = Field(default=10, ge=1, description="每页大小")

    @property
    def offset(self) -> int:
        """计算偏移量"""
        return (self.page - 1) * self.limit

    def clamp(self, max_limit: int) -> "PaginationParams":
        """限制每页大小不超过配置上限"""
        if self.limit <= max_limit:
            return self
        return PaginationParams(page=self.page, limit=max_limit)


def cents_to_amount(cents: Optional[int]) -> Optional[float]:
    """分转换为元"""
    if cents is None:
        return None
    return cents / 100
