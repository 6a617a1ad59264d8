"""
校园食堂订餐后端服务 - 主应用入口
提供点餐、钱包支付和健康统计的完整后端API服务

主要功能模块：
- 学生下单、取消与取餐
- 钱包充值、扣款、退款与流水
- 每日/每月营养与消费统计
- 后台对账任务补齐健康统计
- 业务审计日志

技术栈：FastAPI + DuckDB + JWT认证 + APScheduler
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from .api import api_router
from .config import get_settings
from .config.settings import Settings
from .core.database import DatabaseManager
from .core.error_handler import (
    application_error_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from .core.exceptions import BaseApplicationError
from .core.scheduler import SchedulerManager
from .services import build_services

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings):
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    services = app.state.services
    services.db.init_database()
    logger.info("Database initialized: %s", services.db.db_path)

    scheduler = None
    if services.settings.scheduler_enabled:
        scheduler = SchedulerManager(services)
        scheduler.initialize()
        scheduler.start()
    app.state.scheduler = scheduler

    yield

    if scheduler is not None:
        scheduler.shutdown(wait=False)


def create_app(settings: Optional[Settings] = None, db: Optional[DatabaseManager] = None,
               clock=None) -> FastAPI:
    """创建FastAPI应用"""
    settings = settings or get_settings()
    configure_logging(settings)
    db = db or DatabaseManager.from_settings(settings)

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="校园食堂订餐系统API",
        debug=settings.debug,
        lifespan=lifespan
    )
    app.state.services = build_services(db, settings, clock)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 注册异常处理器
    app.add_exception_handler(BaseApplicationError, application_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/health")
    def health_check():
        try:
            db.execute_one("SELECT 1")
            database = "connected"
        except BaseApplicationError as e:
            database = f"error: {e.message}"
        return {
            "status": "healthy" if database == "connected" else "unhealthy",
            "version": settings.api_version,
            "database": database,
        }

    @app.get("/")
    def root():
        return {
            "name": settings.api_title,
            "version": settings.api_version,
            "description": "校园食堂订餐系统API"
        }

    return app


# 应用实例
app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)
