"""
Domain 模块

- enums: 任务与事件枚举
- models: Task / User 领域模型
- schemas: 请求与响应模式
- events: 广播事件
"""

from taskweave.domain.enums import EventType, MessageType, TaskPriority, TaskStatus
from taskweave.domain.events import Event
from taskweave.domain.models import Task, User

__all__ = [
    "EventType",
    "MessageType",
    "TaskPriority",
    "TaskStatus",
    "Event",
    "Task",
    "User",
]
