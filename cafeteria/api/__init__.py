"""
API routes and endpoints.
"""

from fastapi import APIRouter
from .v1 import admin, meals, orders, users, wallet, wellness

api_router = APIRouter()

# 包含所有v1路由
api_router.include_router(users.router, prefix="/users", tags=["用户"])
api_router.include_router(orders.router, prefix="/orders", tags=["订单"])
api_router.include_router(wallet.router, prefix="/wallet", tags=["钱包"])
api_router.include_router(wellness.router, prefix="/wellness", tags=["健康统计"])
api_router.include_router(meals.router, prefix="/meals", tags=["餐品"])
api_router.include_router(meals.slots_router, prefix="/time-slots", tags=["取餐时段"])
api_router.include_router(admin.router, prefix="/admin", tags=["管理"])
