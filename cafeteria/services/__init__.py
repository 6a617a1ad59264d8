"""
Business logic services.
Contains service layer implementations for core business operations.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from ..config.settings import Settings, settings as default_settings
from ..core.database import DatabaseManager
from .catalog_service import CatalogService
from .consistency_service import ConsistencyService
from .order_service import OrderService
from .reconciliation_service import ReconciliationService
from .user_service import UserService
from .wallet_service import WalletService
from .wellness_service import WellnessService


@dataclass
class Services:
    """服务容器，挂在 app.state.services 上"""
    db: DatabaseManager
    settings: Settings
    wallets: WalletService
    catalog: CatalogService
    wellness: WellnessService
    users: UserService
    orders: OrderService
    reconciliation: ReconciliationService
    consistency: ConsistencyService


def build_services(db: DatabaseManager, settings: Optional[Settings] = None,
                   clock: Optional[Callable[[], datetime]] = None) -> Services:
    """按依赖顺序创建所有服务，共享同一个数据库管理器和时钟"""
    settings = settings or default_settings
    wallets = WalletService(db, settings, clock)
    catalog = CatalogService(db, settings, clock)
    wellness = WellnessService(db, settings, clock)
    users = UserService(db, wallets, settings, clock)
    orders = OrderService(db, wallets, catalog, wellness, users, settings, clock)
    return Services(
        db=db,
        settings=settings,
        wallets=wallets,
        catalog=catalog,
        wellness=wellness,
        users=users,
        orders=orders,
        reconciliation=ReconciliationService(db, wellness, settings, clock),
        consistency=ConsistencyService(db),
    )


__all__ = [
    "Services",
    "build_services",
    "CatalogService",
    "ConsistencyService",
    "OrderService",
    "ReconciliationService",
    "UserService",
    "WalletService",
    "WellnessService",
]
