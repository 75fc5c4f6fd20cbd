"""
枚举定义

任务、事件与实时消息的枚举类型集中定义。
"""

from enum import Enum

# ========== 任务相关枚举 ==========

class TaskPriority(str, Enum):
    """任务优先级"""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class TaskStatus(str, Enum):
    """任务状态"""
    TODO = "To Do"
    IN_PROGRESS = "In Progress"
    DONE = "Done"


# ========== 实时推送相关枚举 ==========

class EventType(str, Enum):
    """广播事件类型"""
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_DELETED = "task_deleted"
    USER_JOINED = "user_joined"
    USER_LEFT = "user_left"


class MessageType(str, Enum):
    """WebSocket 控制消息类型"""
    # 客户端 -> 服务端
    USER_JOIN = "user_join"
    USER_LEAVE = "user_leave"
    PING = "ping"
    # 服务端 -> 客户端
    CONNECTED = "connected"
    PONG = "pong"
    ERROR = "error"


TASK_EVENT_TYPES = frozenset(
    {EventType.TASK_CREATED, EventType.TASK_UPDATED, EventType.TASK_DELETED}
)
