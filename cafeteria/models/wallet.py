"""
钱包与流水数据模型

金额统一以分为单位保存；月度预算上限为0表示不限额。
"""

import math
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import Field

from .base import BaseEntity, TimestampMixin


class TransactionType(str, Enum):
    """流水类型枚举"""
    CREDIT = "credit"  # 入账
    DEBIT = "debit"    # 扣款


class TransactionStatus(str, Enum):
    """流水状态枚举"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class ChargeMethod(str, Enum):
    """柜台充值方式"""
    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    OTHER = "other"


class Wallet(BaseEntity, TimestampMixin):
    """钱包完整模型"""
    wallet_id: int = Field(..., description="钱包ID")
    user_id: int = Field(..., description="用户ID")
    balance_cents: int = Field(0, ge=0, description="余额（分）")
    monthly_budget_cap_cents: int = Field(0, ge=0, description="月度预算上限（分），0为不限")
    current_month_spent_cents: int = Field(0, ge=0, description="本月已消费（分）")
    is_active: bool = Field(True, description="是否启用")
    last_transaction_date: Optional[datetime] = Field(None, description="最近交易时间")

    def can_afford(self, amount_cents: int) -> bool:
        """余额是否足够支付"""
        return self.balance_cents >= amount_cents

    def exceeds_budget(self, amount_cents: int) -> bool:
        """本次消费后是否超出月度预算（仅提示，不拦截）"""
        if self.monthly_budget_cap_cents == 0:
            return False
        return self.current_month_spent_cents + amount_cents > self.monthly_budget_cap_cents

    def remaining_budget_cents(self) -> Union[int, float]:
        """剩余预算，不限额时返回 math.inf"""
        if self.monthly_budget_cap_cents == 0:
            return math.inf
        return max(0, self.monthly_budget_cap_cents - self.current_month_spent_cents)

    def budget_usage_percentage(self) -> float:
        if self.monthly_budget_cap_cents == 0:
            return 0.0
        return round(self.current_month_spent_cents / self.monthly_budget_cap_cents * 100, 2)


class Transaction(BaseEntity):
    """钱包流水（只追加）"""
    transaction_id: int = Field(..., description="流水ID")
    wallet_id: int = Field(..., description="钱包ID")
    user_id: int = Field(..., description="用户ID")
    type: TransactionType = Field(..., description="类型")
    amount_cents: int = Field(..., gt=0, description="金额（分）")
    description: str = Field(..., description="说明")
    order_id: Optional[int] = Field(None, description="关联订单ID")
    payment_method: Optional[str] = Field(None, description="支付方式")
    balance_after_cents: int = Field(..., description="交易后余额（分）")
    status: TransactionStatus = Field(TransactionStatus.COMPLETED, description="状态")
    processed_by: Optional[int] = Field(None, description="经办员工ID")
    notes: Optional[str] = Field(None, description="备注")
    created_at: Optional[datetime] = None

    @property
    def signed_amount_cents(self) -> int:
        """带符号金额，入账为正"""
        if self.type == TransactionType.CREDIT:
            return self.amount_cents
        return -self.amount_cents
