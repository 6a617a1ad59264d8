"""
餐品与取餐时段路由模块
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...core.error_handler import create_success_response
from ...core.security import get_current_principal, require_staff
from ...models.meal import MealCategory
from ...models.user import Principal
from ...schemas.meal import MealCreateRequest, MealUpdateRequest, TimeSlotCreateRequest
from ...services import Services
from ..deps import get_services

router = APIRouter()
slots_router = APIRouter()


@router.get("")
def list_meals(category: Optional[MealCategory] = Query(None, description="分类"),
               include_unavailable: bool = Query(False, description="包含不可订餐品（员工）"),
               principal: Principal = Depends(get_current_principal),
               services: Services = Depends(get_services)):
    """今日可订餐品；员工可查看全部"""
    cat = category.value if category else None
    if include_unavailable and principal.is_staff:
        meals = services.catalog.list_meals(cat)
    else:
        meals = services.catalog.list_available_meals(cat)
    return create_success_response([m.model_dump(mode="json") for m in meals], "查询成功")


@router.get("/{meal_id}")
def get_meal(meal_id: int,
             principal: Principal = Depends(get_current_principal),
             services: Services = Depends(get_services)):
    return create_success_response(services.catalog.get_meal(meal_id).model_dump(mode="json"), "查询成功")


@router.post("", status_code=201)
def create_meal(req: MealCreateRequest,
                staff: Principal = Depends(require_staff),
                services: Services = Depends(get_services)):
    """创建餐品（员工）"""
    meal = services.catalog.create_meal(req, created_by=staff.id)
    return create_success_response(meal.model_dump(mode="json"), "餐品已创建")


@router.put("/{meal_id}")
def update_meal(meal_id: int, req: MealUpdateRequest,
                staff: Principal = Depends(require_staff),
                services: Services = Depends(get_services)):
    """更新餐品（员工）"""
    meal = services.catalog.update_meal(meal_id, req.model_dump(exclude_none=True), actor_id=staff.id)
    return create_success_response(meal.model_dump(mode="json"), "餐品已更新")


@router.patch("/{meal_id}/toggle")
def toggle_meal(meal_id: int,
                staff: Principal = Depends(require_staff),
                services: Services = Depends(get_services)):
    """切换餐品上下架（员工）"""
    meal = services.catalog.toggle_meal_availability(meal_id, actor_id=staff.id)
    return create_success_response(meal.model_dump(mode="json"), "餐品状态已更新")


@slots_router.get("")
def list_time_slots(on_date: Optional[date] = Query(None, alias="date", description="日期，默认今天"),
                    principal: Principal = Depends(get_current_principal),
                    services: Services = Depends(get_services)):
    """指定日期可用的取餐时段"""
    slots = services.catalog.list_time_slots(on_date, available_only=not principal.is_staff)
    data = [
        {**s.model_dump(mode="json"), "remaining_capacity": s.remaining_capacity, "is_full": s.is_full}
        for s in slots
    ]
    return create_success_response(data, "查询成功")


@slots_router.get("/{slot_id}")
def get_time_slot(slot_id: int,
                  principal: Principal = Depends(get_current_principal),
                  services: Services = Depends(get_services)):
    slot = services.catalog.get_time_slot(slot_id)
    return create_success_response(
        {**slot.model_dump(mode="json"), "remaining_capacity": slot.remaining_capacity}, "查询成功"
    )


@slots_router.post("", status_code=201)
def create_time_slot(req: TimeSlotCreateRequest,
                     staff: Principal = Depends(require_staff),
                     services: Services = Depends(get_services)):
    """创建取餐时段（员工）"""
    slot = services.catalog.create_time_slot(req, actor_id=staff.id)
    return create_success_response(slot.model_dump(mode="json"), "时段已创建")


@slots_router.patch("/{slot_id}/toggle")
def toggle_time_slot(slot_id: int,
                     staff: Principal = Depends(require_staff),
                     services: Services = Depends(get_services)):
    slot = services.catalog.toggle_time_slot(slot_id, actor_id=staff.id)
    return create_success_response(slot.model_dump(mode="json"), "时段状态已更新")
