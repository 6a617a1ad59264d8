"""
订单路由模块
学生下单、查询和取消；员工查看全部订单、更新状态、确认取餐和查看当日统计
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...core.error_handler import create_paginated_response, create_success_response
from ...core.security import get_current_principal, require_staff
from ...models.base import PaginationParams
from ...models.order import OrderStatus
from ...models.user import Principal
from ...schemas.order import (
    OrderCancelRequest,
    OrderCollectRequest,
    OrderCreateRequest,
    OrderStatusUpdateRequest,
)
from ...services import Services
from ..deps import get_pagination, get_services

router = APIRouter()


@router.post("", status_code=201)
def create_order(req: OrderCreateRequest,
                 principal: Principal = Depends(get_current_principal),
                 services: Services = Depends(get_services)):
    """创建订单"""
    result = services.orders.create_order(principal.id, req)
    return create_success_response(result, "下单成功")


@router.get("/my")
def list_my_orders(status: Optional[OrderStatus] = Query(None, description="状态过滤"),
                   pagination: PaginationParams = Depends(get_pagination),
                   principal: Principal = Depends(get_current_principal),
                   services: Services = Depends(get_services)):
    """我的订单"""
    orders, total = services.orders.list_my_orders(
        principal.id, pagination.page, pagination.limit, status.value if status else None
    )
    items = [services.orders.serialize(o) for o in orders]
    return create_paginated_response(items, total, pagination.page, pagination.limit)


@router.get("/stats/today")
def today_stats(staff: Principal = Depends(require_staff),
                services: Services = Depends(get_services)):
    """当日订单统计"""
    return create_success_response(services.orders.today_stats(), "查询成功")


@router.get("")
def list_all_orders(status: Optional[OrderStatus] = Query(None, description="状态过滤"),
                    on_date: Optional[date] = Query(None, alias="date", description="下单日期"),
                    pagination: PaginationParams = Depends(get_pagination),
                    staff: Principal = Depends(require_staff),
                    services: Services = Depends(get_services)):
    """全部订单（员工）"""
    orders, total = services.orders.list_all_orders(
        pagination.page, pagination.limit, status.value if status else None, on_date
    )
    items = [services.orders.serialize(o) for o in orders]
    return create_paginated_response(items, total, pagination.page, pagination.limit)


@router.get("/{order_id}")
def get_order(order_id: int,
              principal: Principal = Depends(get_current_principal),
              services: Services = Depends(get_services)):
    """订单详情"""
    order = services.orders.get_order_for(order_id, principal)
    return create_success_response(services.orders.serialize(order), "查询成功")


@router.post("/{order_id}/cancel")
def cancel_order(order_id: int,
                 req: Optional[OrderCancelRequest] = None,
                 principal: Principal = Depends(get_current_principal),
                 services: Services = Depends(get_services)):
    """取消订单"""
    reason = req.reason if req else None
    order = services.orders.cancel_order(order_id, principal, reason)
    return create_success_response(services.orders.serialize(order), "订单已取消")


@router.patch("/{order_id}/status")
def update_order_status(order_id: int, req: OrderStatusUpdateRequest,
                        staff: Principal = Depends(require_staff),
                        services: Services = Depends(get_services)):
    """更新订单状态（员工）"""
    order = services.orders.update_status(order_id, req.status, staff.id, req.reason)
    return create_success_response(services.orders.serialize(order), "订单状态已更新")


@router.post("/{order_id}/collect")
def collect_order(order_id: int,
                  req: Optional[OrderCollectRequest] = None,
                  staff: Principal = Depends(require_staff),
                  services: Services = Depends(get_services)):
    """确认取餐（员工）"""
    token = req.pickup_token if req else None
    order = services.orders.collect_order(order_id, staff.id, token)
    return create_success_response(services.orders.serialize(order), "取餐成功")
