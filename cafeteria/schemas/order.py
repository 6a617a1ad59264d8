"""
订单相关的请求/响应模式
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.order import OrderStatus, PaymentMethod


class OrderItemRequest(BaseModel):
    """订单行"""
    meal_id: int = Field(..., description="餐品ID")
    quantity: int = Field(1, ge=1, le=20, description="数量")


class OrderCreateRequest(BaseModel):
    """订单创建请求"""
    items: List[OrderItemRequest] = Field(default_factory=list, description="订单行")
    time_slot_id: Optional[int] = Field(None, description="取餐时段ID")
    pickup_time: Optional[datetime] = Field(None, description="期望取餐时间")
    payment_method: PaymentMethod = Field(PaymentMethod.WALLET, description="支付方式")
    special_instructions: Optional[str] = Field("", max_length=500, description="备注")


class OrderCancelRequest(BaseModel):
    """订单取消请求"""
    reason: Optional[str] = Field(None, max_length=500, description="取消原因")


class OrderStatusUpdateRequest(BaseModel):
    """订单状态更新请求"""
    status: OrderStatus = Field(..., description="目标状态")
    reason: Optional[str] = Field(None, max_length=500, description="取消原因（目标为cancelled时）")


class OrderCollectRequest(BaseModel):
    """取餐请求"""
    pickup_token: Optional[str] = Field(None, description="取餐码，提供时校验")
