"""
钱包路由模块
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...core.error_handler import create_paginated_response, create_success_response
from ...core.security import get_current_principal, require_admin, require_staff
from ...models.base import PaginationParams
from ...models.user import Principal
from ...models.wallet import TransactionType
from ...schemas.wallet import BudgetUpdateRequest, RechargeRequest, StaffChargeRequest
from ...services import Services
from ...services.wallet_service import serialize_wallet
from ..deps import get_pagination, get_services

router = APIRouter()


@router.get("")
def get_my_wallet(principal: Principal = Depends(get_current_principal),
                  services: Services = Depends(get_services)):
    """我的钱包"""
    wallet = services.wallets.get_or_create_wallet(principal.id)
    return create_success_response(serialize_wallet(wallet, services.settings.currency), "查询成功")


@router.post("/recharge")
def recharge(req: RechargeRequest,
             principal: Principal = Depends(get_current_principal),
             services: Services = Depends(get_services)):
    """钱包充值"""
    services.wallets.get_or_create_wallet(principal.id)
    wallet, txn = services.wallets.recharge(principal.id, req.amount_cents, req.payment_method)
    return create_success_response({
        "wallet": serialize_wallet(wallet, services.settings.currency),
        "transaction": txn.model_dump(mode="json"),
    }, "充值成功")


@router.get("/transactions")
def list_transactions(type: Optional[TransactionType] = Query(None, description="流水类型"),
                      start_date: Optional[date] = Query(None, description="开始日期"),
                      end_date: Optional[date] = Query(None, description="结束日期"),
                      pagination: PaginationParams = Depends(get_pagination),
                      principal: Principal = Depends(get_current_principal),
                      services: Services = Depends(get_services)):
    """流水列表，附带入账/扣款汇总"""
    txns, total, summary = services.wallets.list_transactions(
        principal.id, pagination.page, pagination.limit,
        type.value if type else None, start_date, end_date
    )
    return create_paginated_response(
        [t.model_dump(mode="json") for t in txns], total, pagination.page, pagination.limit,
        summary=summary
    )


@router.get("/balance")
def get_balance(principal: Principal = Depends(get_current_principal),
                services: Services = Depends(get_services)):
    """余额与预算摘要"""
    return create_success_response(services.wallets.balance_summary(principal.id), "查询成功")


@router.patch("/budget")
def update_budget(req: BudgetUpdateRequest,
                  principal: Principal = Depends(get_current_principal),
                  services: Services = Depends(get_services)):
    """设置月度预算上限"""
    wallet = services.wallets.update_budget_cap(principal.id, req.monthly_budget_cap_cents)
    return create_success_response(serialize_wallet(wallet, services.settings.currency), "预算已更新")


@router.get("/stats")
def wallet_stats(principal: Principal = Depends(get_current_principal),
                 services: Services = Depends(get_services)):
    """本月钱包统计"""
    return create_success_response(services.wallets.monthly_stats(principal.id), "查询成功")


@router.post("/reset-monthly")
def reset_monthly(user_id: Optional[int] = Query(None, description="只重置指定用户"),
                  admin: Principal = Depends(require_admin),
                  services: Services = Depends(get_services)):
    """重置月度消费（管理员）"""
    if user_id is not None:
        wallet = services.wallets.reset_monthly_spending(user_id, actor_id=admin.id)
        return create_success_response(serialize_wallet(wallet, services.settings.currency), "月度消费已重置")
    count = services.wallets.reset_all_monthly_spending(actor_id=admin.id)
    return create_success_response({"wallets_reset": count}, "月度消费已重置")


@router.post("/charge")
def staff_charge(req: StaffChargeRequest,
                 staff: Principal = Depends(require_staff),
                 services: Services = Depends(get_services)):
    """柜台为学生充值（员工）"""
    wallet, txn = services.wallets.staff_charge(
        staff.id, req.student_id, req.amount_cents, req.payment_method.value, req.notes
    )
    return create_success_response({
        "wallet": serialize_wallet(wallet, services.settings.currency),
        "transaction": txn.model_dump(mode="json"),
    }, "充值成功")
