"""
钱包相关的请求模式
"""

from typing import Optional

from pydantic import BaseModel, Field

from ..models.wallet import ChargeMethod


class RechargeRequest(BaseModel):
    """充值请求"""
    amount_cents: int = Field(..., gt=0, description="充值金额（分）")
    payment_method: Optional[str] = Field("online", max_length=50, description="充值渠道")


class StaffChargeRequest(BaseModel):
    """柜台充值请求"""
    student_id: int = Field(..., description="学生ID")
    amount_cents: int = Field(..., gt=0, description="充值金额（分）")
    payment_method: ChargeMethod = Field(ChargeMethod.CASH, description="收款方式")
    notes: Optional[str] = Field(None, max_length=500, description="备注")


class BudgetUpdateRequest(BaseModel):
    """月度预算更新请求"""
    monthly_budget_cap_cents: int = Field(..., ge=0, description="月度预算上限（分），0为不限")
