"""
自定义异常类
按错误种类划分（校验、未找到、状态冲突、权限、集成失败、存储故障），
HTTP 层根据种类映射状态码，业务代码按具体子类抛出
"""

from typing import Any, Dict, Optional


class BaseApplicationError(Exception):
    """应用基础异常类"""

    default_code: str = "APPLICATION_ERROR"
    default_message: str = "操作失败"

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message or self.default_message
        self.error_code = error_code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        """错误种类名称（ValidationError / ConflictError ...）"""
        for cls in type(self).__mro__:
            if cls in ERROR_KINDS:
                return cls.__name__
        return "InternalError"


# ---- 错误种类 ----

class ValidationError(BaseApplicationError):
    """输入数据校验失败"""
    default_code = "VALIDATION_ERROR"
    default_message = "请求参数不合法"


class AuthenticationError(BaseApplicationError):
    """认证失败"""
    default_code = "AUTHENTICATION_REQUIRED"
    default_message = "需要登录"


class AuthorizationError(BaseApplicationError):
    """角色或归属不满足"""
    default_code = "PERMISSION_DENIED"
    default_message = "无权执行该操作"


class NotFoundError(BaseApplicationError):
    """引用的实体不存在"""
    default_code = "RESOURCE_NOT_FOUND"
    default_message = "资源不存在"


class ConflictError(BaseApplicationError):
    """状态前置条件不满足"""
    default_code = "CONFLICT"
    default_message = "当前状态不允许该操作"


class IntegrationFailure(BaseApplicationError):
    """次要副作用失败（不影响主流程）"""
    default_code = "INTEGRATION_FAILURE"
    default_message = "附属操作失败"


class DatabaseError(BaseApplicationError):
    """数据库相关异常"""
    default_code = "DATABASE_ERROR"
    default_message = "数据库操作失败"


class TransientStorageError(DatabaseError):
    """基础设施原因导致的存储失败，幂等操作可以重试"""
    default_code = "STORAGE_UNAVAILABLE"
    default_message = "存储暂时不可用，请稍后重试"


class ConcurrencyError(BaseApplicationError):
    """并发控制错误"""
    default_code = "CONCURRENCY_CONFLICT"
    default_message = "系统繁忙，请稍后重试"


ERROR_KINDS = (
    ValidationError,
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    ConflictError,
    IntegrationFailure,
    TransientStorageError,
    DatabaseError,
    ConcurrencyError,
)


# ---- 具体业务异常 ----

class EmptyOrderError(ValidationError):
    default_code = "EMPTY_ORDER"
    default_message = "订单中没有任何餐品"


class InvalidAmountError(ValidationError):
    default_code = "INVALID_AMOUNT"
    default_message = "金额必须大于0"


class InvalidPickupTokenError(ValidationError):
    default_code = "INVALID_PICKUP_TOKEN"
    default_message = "取餐码无效"


class OnboardingRequiredError(AuthorizationError):
    default_code = "ONBOARDING_REQUIRED"
    default_message = "请先完成个人资料设置"


class UserNotFoundError(NotFoundError):
    default_code = "USER_NOT_FOUND"
    default_message = "用户不存在"


class MealNotFoundError(NotFoundError):
    default_code = "MEAL_NOT_FOUND"
    default_message = "餐品不存在"


class TimeSlotNotFoundError(NotFoundError):
    default_code = "TIME_SLOT_NOT_FOUND"
    default_message = "取餐时段不存在"


class WalletNotFoundError(NotFoundError):
    default_code = "WALLET_NOT_FOUND"
    default_message = "钱包不存在"


class OrderNotFoundError(NotFoundError):
    default_code = "ORDER_NOT_FOUND"
    default_message = "订单不存在"


class MealUnavailableError(ConflictError):
    default_code = "MEAL_UNAVAILABLE"
    default_message = "餐品今日不可订"


class SlotFullError(ConflictError):
    default_code = "SLOT_FULL"
    default_message = "所选取餐时段已满"


class InsufficientBalanceError(ConflictError):
    default_code = "INSUFFICIENT_BALANCE"
    default_message = "钱包余额不足"


class CannotCancelError(ConflictError):
    default_code = "CANNOT_CANCEL"
    default_message = "订单当前状态无法取消"


class NotReadyError(ConflictError):
    default_code = "NOT_READY"
    default_message = "订单尚未备好，无法取餐"


class InvalidStatusTransitionError(ConflictError):
    default_code = "INVALID_STATUS_TRANSITION"
    default_message = "订单状态转换不合法"
