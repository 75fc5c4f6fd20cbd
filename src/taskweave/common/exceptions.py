"""
Taskweave 异常模块

仅包含与 HTTP 无关的领域异常定义，Web 层负责映射为统一响应。
"""

from __future__ import annotations

# =============================================================================
# 基础异常类
# =============================================================================


class TaskweaveException(Exception):
    """Taskweave 异常基类"""

    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str, error_code: str | None = None):
        self.message = message
        if error_code:
            self.error_code = error_code
        super().__init__(message)

    @classmethod
    def from_remote(cls, message: str, field: str | None = None) -> "TaskweaveException":
        """由远端错误信封还原异常，不经过子类构造参数"""
        exc = Exception.__new__(cls)
        Exception.__init__(exc, message)
        exc.message = message
        if field:
            exc.field = field
        return exc


class ValidationError(TaskweaveException):
    """验证错误：输入格式错误或引用了不存在的用户/任务"""

    error_code = "VALIDATION_ERROR"
    field: str | None = None

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class NotFoundError(TaskweaveException):
    """资源不存在异常"""

    error_code = "NOT_FOUND"
    resource: str | None = None
    identifier: str | None = None

    def __init__(self, resource: str, identifier: str | None = None):
        self.resource = resource
        self.identifier = identifier
        message = f"{resource} 不存在"
        if identifier:
            message = f"{resource} {identifier} 不存在"
        super().__init__(message)


class ConflictError(TaskweaveException):
    """资源冲突异常"""

    error_code = "CONFLICT"


class VersionConflictError(ConflictError):
    """版本冲突：调用方持有的版本已过期"""

    error_code = "VERSION_CONFLICT"
    task_id: str | None = None
    expected: int | None = None
    actual: int | None = None

    def __init__(self, task_id: str, expected: int, actual: int):
        self.task_id = task_id
        self.expected = expected
        self.actual = actual
        super().__init__(f"任务 {task_id} 版本已变更 (期望 {expected}，当前 {actual})")


class DependencyUnmetError(TaskweaveException):
    """依赖未完成，无法将任务标记为完成"""

    error_code = "DEPENDENCY_UNMET"
    task_id: str | None = None
    pending: list[str] = []

    def __init__(self, task_id: str, pending: list[str] | None = None):
        self.task_id = task_id
        self.pending = pending or []
        super().__init__(f"任务 {task_id} 的依赖尚未全部完成，无法标记为完成")


class AuthenticationError(TaskweaveException):
    """认证错误异常"""

    error_code = "AUTHENTICATION_ERROR"

    def __init__(self, message: str = "未授权或会话已过期"):
        super().__init__(message)


class InternalError(TaskweaveException):
    """内部错误，对调用方只暴露通用信息"""

    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str = "服务器内部错误"):
        super().__init__(message)


class SerializationError(TaskweaveException):
    """序列化错误异常"""

    error_code = "SERIALIZATION_ERROR"


# 错误码 -> 异常类，客户端据此还原服务端异常
ERROR_CODE_MAPPING: dict[str, type[TaskweaveException]] = {
    "VALIDATION_ERROR": ValidationError,
    "NOT_FOUND": NotFoundError,
    "CONFLICT": ConflictError,
    "VERSION_CONFLICT": VersionConflictError,
    "DEPENDENCY_UNMET": DependencyUnmetError,
    "AUTHENTICATION_ERROR": AuthenticationError,
    "INTERNAL_ERROR": InternalError,
}


__all__ = [
    "TaskweaveException",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "VersionConflictError",
    "DependencyUnmetError",
    "AuthenticationError",
    "InternalError",
    "SerializationError",
    "ERROR_CODE_MAPPING",
]
