"""
路由公共依赖
"""

from typing import Optional

from fastapi import Query, Request

from ..models.base import PaginationParams
from ..services import Services


def get_services(request: Request) -> Services:
    """获取挂在应用上的服务容器"""
    return request.app.state.services


def get_pagination(
    request: Request,
    page: int = Query(1, ge=1, description="页码"),
    limit: Optional[int] = Query(None, ge=1, description="每页大小"),
) -> PaginationParams:
    """分页参数，未指定时使用配置的默认值并限制最大值"""
    settings = request.app.state.services.settings
    params = PaginationParams(page=page, limit=limit or settings.default_page_size)
    return params.clamp(settings.max_page_size)
