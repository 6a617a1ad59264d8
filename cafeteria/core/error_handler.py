"""
统一错误处理模块
提供标准化的错误响应格式和异常处理器

主要功能：
- 统一的错误响应信封 {success, message, error, error_code, details}
- 按错误种类映射HTTP状态码
- 未知异常记录到日志和 logs 表
- 成功/分页响应构造
"""

import json
import logging
import math
import traceback
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .exceptions import BaseApplicationError

logger = logging.getLogger(__name__)


class ErrorResponse:
    """标准错误响应格式"""

    def __init__(self, error: str, error_code: str, message: str,
                 details: Optional[Dict[str, Any]] = None,
                 http_status: int = 400):
        self.error = error
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        self.http_status = http_status

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式"""
        return {
            "success": False,
            "message": self.message,
            "error": self.error,
            "error_code": self.error_code,
            "details": self.details
        }

    def to_json_response(self) -> JSONResponse:
        """转换为FastAPI JSONResponse"""
        return JSONResponse(
            status_code=self.http_status,
            content=self.to_dict()
        )


class ErrorHandler:
    """全局错误处理器"""

    # 错误种类到HTTP状态码的映射
    KIND_STATUS_MAP = {
        "ValidationError": 400,
        "AuthenticationError": 401,
        "AuthorizationError": 403,
        "NotFoundError": 404,
        "ConflictError": 409,
        "ConcurrencyError": 409,
        "TransientStorageError": 503,
        "IntegrationFailure": 500,
        "DatabaseError": 500,
    }

    HTTP_STATUS_KINDS = {
        400: "ValidationError",
        401: "AuthenticationError",
        403: "AuthorizationError",
        404: "NotFoundError",
        409: "ConflictError",
        422: "ValidationError",
    }

    @classmethod
    def handle_application_error(cls, error: BaseApplicationError) -> ErrorResponse:
        """处理应用业务异常"""
        kind = error.kind
        http_status = cls.KIND_STATUS_MAP.get(kind, 500)
        if http_status >= 500:
            logger.error("请求失败 [%s] %s", error.error_code, error.message)

        return ErrorResponse(
            error=kind,
            error_code=error.error_code,
            message=error.message,
            details=error.details,
            http_status=http_status
        )

    @classmethod
    def handle_http_exception(cls, error: HTTPException) -> ErrorResponse:
        """处理FastAPI HTTP异常"""
        return ErrorResponse(
            error=cls.HTTP_STATUS_KINDS.get(error.status_code, "HTTPError"),
            error_code="HTTP_ERROR",
            message=str(error.detail),
            details={"status_code": error.status_code},
            http_status=error.status_code
        )

    @classmethod
    def handle_validation_error(cls, error: RequestValidationError) -> ErrorResponse:
        """处理请求体/参数校验错误"""
        errors = [
            {"loc": [str(p) for p in e.get("loc", ())], "msg": e.get("msg", "")}
            for e in error.errors()
        ]
        return ErrorResponse(
            error="ValidationError",
            error_code="VALIDATION_ERROR",
            message="请求参数验证失败",
            details={"validation_errors": errors},
            http_status=400
        )

    @classmethod
    def handle_unknown_error(cls, error: Exception, db=None) -> ErrorResponse:
        """处理未知异常"""
        error_details = {
            "type": type(error).__name__,
            "message": str(error),
            "traceback": traceback.format_exc()
        }
        logger.error("未处理的异常: %s", error_details["message"], exc_info=error)
        if db is not None:
            cls._log_system_error(db, error_details)

        return ErrorResponse(
            error="InternalError",
            error_code="INTERNAL_ERROR",
            message="系统内部错误",
            details={"error_type": type(error).__name__},
            http_status=500
        )

    @classmethod
    def _log_system_error(cls, db, error_details: Dict[str, Any]):
        """记录系统错误到数据库"""
        try:
            db.execute(
                "INSERT INTO logs(user_id, actor_id, action, detail_json) VALUES (?,?,?,?)",
                [None, None, "system_error", json.dumps(error_details, ensure_ascii=False)]
            )
        except BaseApplicationError:
            logger.warning("系统错误未能写入数据库日志")


async def application_error_handler(request: Request, exc: BaseApplicationError) -> JSONResponse:
    """应用异常处理器"""
    return ErrorHandler.handle_application_error(exc).to_json_response()


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """HTTP异常处理器"""
    return ErrorHandler.handle_http_exception(exc).to_json_response()


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """校验异常处理器"""
    return ErrorHandler.handle_validation_error(exc).to_json_response()


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """通用异常处理器"""
    services = getattr(request.app.state, "services", None)
    db = services.db if services is not None else None
    return ErrorHandler.handle_unknown_error(exc, db).to_json_response()


def create_success_response(data: Any = None, message: str = "操作成功") -> Dict[str, Any]:
    """创建标准成功响应"""
    response = {
        "success": True,
        "message": message
    }

    if data is not None:
        response["data"] = data

    return response


def create_paginated_response(items: list, total: int, page: int,
                              limit: int, message: str = "查询成功",
                              **extra: Any) -> Dict[str, Any]:
    """创建分页响应"""
    response = {
        "success": True,
        "message": message,
        "data": items,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if limit else 0
        }
    }
    response.update(extra)
    return response
