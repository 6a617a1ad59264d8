"""
管理员路由模块
数据一致性检查与手动触发对账
"""

from fastapi import APIRouter, Depends, Query

from ...core.error_handler import create_success_response
from ...core.security import require_admin
from ...models.user import Principal
from ...services import Services
from ..deps import get_services

router = APIRouter()


@router.get("/consistency")
def check_consistency(include_warnings: bool = Query(True),
                      admin: Principal = Depends(require_admin),
                      services: Services = Depends(get_services)):
    """数据一致性检查"""
    result = services.consistency.check_data_consistency(admin.id, include_warnings)
    return create_success_response(result, "检查完成")


@router.post("/reconciliation/run")
def run_reconciliation(admin: Principal = Depends(require_admin),
                       services: Services = Depends(get_services)):
    """立即执行一轮健康统计对账"""
    return create_success_response(services.reconciliation.run_once(), "对账完成")
