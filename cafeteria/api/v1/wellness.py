"""
健康统计路由模块
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...core.error_handler import create_success_response
from ...core.exceptions import AuthorizationError
from ...core.security import get_current_principal, require_staff
from ...models.user import Principal
from ...schemas.wellness import DailyGoalsRequest
from ...services import Services
from ..deps import get_services

router = APIRouter()


@router.get("/me")
def get_my_wellness(on_date: Optional[date] = Query(None, alias="date", description="日期，默认今天"),
                    principal: Principal = Depends(get_current_principal),
                    services: Services = Depends(get_services)):
    """我的健康统计（当日记录及当月汇总）"""
    return create_success_response(services.wellness.get_overview(principal.id, on_date), "查询成功")


@router.put("/me/goals")
def update_my_goals(req: DailyGoalsRequest,
                    principal: Principal = Depends(get_current_principal),
                    services: Services = Depends(get_services)):
    """设置当日营养目标"""
    tracking = services.wellness.update_daily_goals(
        principal.id, req.calorie_goal, req.protein_goal, req.carb_goal
    )
    return create_success_response(tracking.model_dump(mode="json"), "目标已更新")


@router.get("/users/{user_id}")
def get_user_wellness(user_id: int,
                      on_date: Optional[date] = Query(None, alias="date"),
                      staff: Principal = Depends(require_staff),
                      services: Services = Depends(get_services)):
    """查看指定用户的健康统计（员工）"""
    services.users.get_user(user_id)
    return create_success_response(services.wellness.get_overview(user_id, on_date), "查询成功")


@router.get("/users/{user_id}/monthly")
def get_user_monthly(user_id: int,
                     year: Optional[int] = Query(None, ge=2000, le=2100),
                     month: Optional[int] = Query(None, ge=1, le=12),
                     principal: Principal = Depends(get_current_principal),
                     services: Services = Depends(get_services)):
    """指定用户的月度汇总，学生只能查看自己"""
    if not principal.is_staff and principal.id != user_id:
        raise AuthorizationError("只能查看自己的健康统计")
    today = services.wellness.clock().date()
    stats = services.wellness.get_monthly_stats(user_id, year or today.year, month or today.month)
    return create_success_response(stats.model_dump(), "查询成功")
