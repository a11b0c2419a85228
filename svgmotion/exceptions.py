"""
业务异常定义

服务层只抛出这些异常，由 main.py 中注册的异常处理器统一转换为 JSON 错误响应。
"""
from fastapi import status


class AppError(Exception):
    """应用异常基类"""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "APP_ERROR"
    default_message: str = "服务器繁忙，请稍后重试"

    def __init__(self, message: str | None = None, status_code: int | None = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(AppError):
    """输入缺失或非法，未产生任何状态变更"""
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "VALIDATION_ERROR"
    default_message = "请求参数无效"


class AuthError(AppError):
    """凭据错误或令牌无效/过期"""
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "AUTH_ERROR"
    default_message = "无效的认证令牌"


class InsufficientCreditsError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "INSUFFICIENT_CREDITS"
    default_message = "积分不足，请充值"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"
    default_message = "用户不存在"


class ConflictError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "CONFLICT"
    default_message = "该邮箱已被注册"


class RateLimitError(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error_code = "RATE_LIMITED"
    default_message = "请求过于频繁，请稍后再试"


class ConfigurationError(AppError):
    """缺少必需的外部凭据"""
    error_code = "CONFIGURATION_ERROR"
    default_message = "服务未正确配置"


class StorageError(AppError):
    """持久化失败，对外只暴露通用提示"""
    error_code = "STORAGE_ERROR"
    default_message = "数据保存失败，请稍后重试"


class UpstreamError(AppError):
    """上游模型服务调用失败"""
    error_code = "UPSTREAM_ERROR"
    default_message = "AI 服务调用失败"
