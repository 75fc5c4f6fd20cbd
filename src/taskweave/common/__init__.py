"""
Common 模块

通用功能：
- config: 配置管理
- logging: 日志配置
- exceptions: 异常定义
- ids: ID 生成
- time: 时间工具
- serialization: JSON 编解码
"""

from taskweave.common.config import settings
from taskweave.common.exceptions import (
    AuthenticationError,
    ConflictError,
    DependencyUnmetError,
    InternalError,
    NotFoundError,
    SerializationError,
    TaskweaveException,
    ValidationError,
    VersionConflictError,
)
from taskweave.common.ids import generate_id, generate_session_token, generate_uuid
from taskweave.common.logging import setup_logging
from taskweave.common.serialization import from_json, to_json
from taskweave.common.time import now_utc

__all__ = [
    "settings",
    "TaskweaveException",
    "AuthenticationError",
    "ConflictError",
    "DependencyUnmetError",
    "InternalError",
    "NotFoundError",
    "SerializationError",
    "ValidationError",
    "VersionConflictError",
    "generate_id",
    "generate_session_token",
    "generate_uuid",
    "setup_logging",
    "from_json",
    "to_json",
    "now_utc",
]
