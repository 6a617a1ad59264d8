"""
用户路由模块
"""

from fastapi import APIRouter, Depends

from ...core.error_handler import create_success_response
from ...core.security import get_current_principal
from ...models.user import Principal
from ...schemas.user import OnboardingRequest
from ...services import Services
from ..deps import get_services

router = APIRouter()


@router.get("/me")
def get_my_profile(principal: Principal = Depends(get_current_principal),
                   services: Services = Depends(get_services)):
    """当前用户资料及钱包摘要"""
    return create_success_response(services.users.get_profile(principal.id), "查询成功")


@router.post("/me/onboarding")
def complete_onboarding(req: OnboardingRequest,
                        principal: Principal = Depends(get_current_principal),
                        services: Services = Depends(get_services)):
    """完成资料设置"""
    profile = services.users.complete_onboarding(
        principal.id, req.nutritional_goal, req.monthly_budget_cap_cents
    )
    return create_success_response(profile, "资料设置完成")
