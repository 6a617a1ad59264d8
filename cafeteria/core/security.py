"""
安全相关功能
JWT 访问令牌签发/校验，以及基于角色的 FastAPI 依赖
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .exceptions import AuthenticationError, AuthorizationError
from ..config.settings import Settings, settings as default_settings
from ..models.user import Principal, Role


class SecurityManager:
    """安全管理器"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings

    def create_jwt_token(self, user_id: int, email: str, role: str,
                         additional_claims: Dict[str, Any] = None) -> str:
        """创建JWT token"""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "email": email,
            "role": role,
            "exp": now + timedelta(hours=self.settings.jwt_expire_hours),
            "iat": now,
        }
        if additional_claims:
            payload.update(additional_claims)
        return jwt.encode(payload, self.settings.jwt_secret_key, algorithm=self.settings.jwt_algorithm)

    def decode_jwt_token(self, token: str) -> Dict[str, Any]:
        """解码JWT token"""
        try:
            return jwt.decode(token, self.settings.jwt_secret_key,
                              algorithms=[self.settings.jwt_algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("登录已过期", "TOKEN_EXPIRED")
        except jwt.InvalidTokenError as e:
            raise AuthenticationError(f"令牌无效: {e}", "INVALID_TOKEN")

    def principal_from_token(self, token: str) -> Principal:
        """从token中解析当前身份"""
        payload = self.decode_jwt_token(token)
        try:
            return Principal(
                id=int(payload["sub"]),
                email=payload.get("email", ""),
                role=Role(payload.get("role", Role.STUDENT.value)),
            )
        except (KeyError, ValueError):
            raise AuthenticationError("令牌缺少身份信息", "INVALID_TOKEN")


bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(user_id: int, email: str, role: str, settings: Optional[Settings] = None) -> str:
    """创建访问token"""
    return SecurityManager(settings).create_jwt_token(user_id, email, role)


async def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Principal:
    """从Authorization header中提取并验证当前身份"""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError()
    services = request.app.state.services
    return SecurityManager(services.settings).principal_from_token(credentials.credentials)


async def require_staff(principal: Principal = Depends(get_current_principal)) -> Principal:
    """要求食堂员工或管理员"""
    if not principal.is_staff:
        raise AuthorizationError("需要食堂员工或管理员权限", "STAFF_REQUIRED")
    return principal


async def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """要求管理员"""
    if principal.role != Role.ADMIN:
        raise AuthorizationError("需要管理员权限", "ADMIN_REQUIRED")
    return principal
