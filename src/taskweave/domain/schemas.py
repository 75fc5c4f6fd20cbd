"""
请求与响应 Schema

统一响应信封、任务与用户相关的请求和响应模式。
"""

import re
from datetime import datetime
from typing import ClassVar, Generic, TypeVar

from pydantic import BaseModel, Field, field_validator, model_validator

from taskweave.common.time import now_utc
from taskweave.domain.enums import TaskPriority, TaskStatus
from taskweave.domain.models import Task, User

T = TypeVar("T")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _dedupe(ids: list[str]) -> list[str]:
    """去重并保持原有顺序"""
    return list(dict.fromkeys(ids))


# ========== 通用响应 ==========

class BaseResponse(BaseModel, Generic[T]):
    """通用响应模型"""
    success: bool = Field(default=True)
    code: int = Field(default=200)
    message: str = Field(default="")
    data: T | None = Field(default=None)
    error: str | None = Field(default=None, description="失败时的错误码")
    timestamp: datetime = Field(default_factory=now_utc)


class ErrorDetail(BaseModel):
    """错误详情"""
    field: str
    message: str


class ErrorResponse(BaseModel):
    """错误响应模型"""
    success: bool = Field(default=False)
    code: int
    message: str
    error: str
    errors: list[ErrorDetail] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=now_utc)


class HealthResponse(BaseModel):
    """健康检查响应"""
    status: str
    version: str
    timestamp: str
    connections: int = 0


# ========== 任务 ==========

class TaskCreateRequest(BaseModel):
    """任务创建请求"""
    title: str = Field(..., min_length=1, max_length=200, description="任务标题")
    description: str | None = Field(None, max_length=1000)
    priority: TaskPriority = Field(TaskPriority.MEDIUM, description="优先级")
    status: TaskStatus = Field(TaskStatus.TODO, description="初始状态")
    assigned_user_id: str | None = Field(None, description="负责人ID")
    dependencies: list[str] = Field(default_factory=list, description="依赖任务ID")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v):
        if not v.strip():
            raise ValueError("任务标题不能为空")
        return v

    @field_validator("dependencies")
    @classmethod
    def validate_dependencies(cls, v):
        return _dedupe(v)


class TaskUpdateRequest(BaseModel):
    """任务更新请求

    只有显式提供的字段参与合并；description 与 assigned_user_id 显式传 null 表示清空。
    """
    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, max_length=1000)
    priority: TaskPriority | None = None
    status: TaskStatus | None = None
    assigned_user_id: str | None = None
    dependencies: list[str] | None = None

    NULLABLE_FIELDS: ClassVar[frozenset[str]] = frozenset({"description", "assigned_user_id"})

    @field_validator("title")
    @classmethod
    def validate_title(cls, v):
        if v is not None and not v.strip():
            raise ValueError("任务标题不能为空")
        return v

    @field_validator("dependencies")
    @classmethod
    def validate_dependencies(cls, v):
        if v is None:
            return v
        return _dedupe(v)

    @model_validator(mode="after")
    def validate_explicit_nulls(self) -> "TaskUpdateRequest":
        for name in self.model_fields_set - self.NULLABLE_FIELDS:
            if getattr(self, name) is None:
                raise ValueError(f"{name} 不允许为 null")
        return self

    def changes(self) -> dict:
        """返回显式提供的字段"""
        return self.model_dump(exclude_unset=True)


class TaskDetailResponse(BaseModel):
    """任务详情：任务本身、已解析的依赖任务与依赖它的任务"""
    task: Task
    dependencies: list[Task] = Field(default_factory=list)
    dependents: list[Task] = Field(default_factory=list)


class TaskDependenciesResponse(BaseModel):
    """任务依赖关系"""
    dependencies: list[Task] = Field(default_factory=list)
    dependents: list[Task] = Field(default_factory=list)


class TaskStatsResponse(BaseModel):
    """任务统计"""
    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)


# ========== 用户 ==========

class UserCreateRequest(BaseModel):
    """用户注册请求"""
    username: str = Field(..., min_length=3, max_length=50)
    email: str = Field(..., max_length=100)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        if not EMAIL_PATTERN.match(v):
            raise ValueError("邮箱格式不正确")
        return v


class UserLoginRequest(BaseModel):
    """用户登录请求，按用户名登录"""
    username: str = Field(..., min_length=1, max_length=50)


class AuthResponse(BaseModel):
    """注册/登录响应"""
    user: User
    session_token: str


class GlobalStatsResponse(BaseModel):
    """全局统计"""
    total_users: int = 0
    total_tasks: int = 0
    active_sessions: int = 0
    tasks_by_status: dict[str, int] = Field(default_factory=dict)


class UserStatsResponse(BaseModel):
    """当前用户统计"""
    user: User
    task_stats: TaskStatsResponse
    global_stats: GlobalStatsResponse


__all__ = [
    "EMAIL_PATTERN",
    "BaseResponse",
    "ErrorDetail",
    "ErrorResponse",
    "HealthResponse",
    "TaskCreateRequest",
    "TaskUpdateRequest",
    "TaskDetailResponse",
    "TaskDependenciesResponse",
    "TaskStatsResponse",
    "UserCreateRequest",
    "UserLoginRequest",
    "AuthResponse",
    "GlobalStatsResponse",
    "UserStatsResponse",
]
