"""
广播事件

提交成功后由 MutationGateway / IdentityService 构造，经 BroadcastHub 推送。
seq 由 Hub 在发布时统一分配。
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from taskweave.common.time import now_utc
from taskweave.domain.enums import EventType
from taskweave.domain.models import Task, User


class Event(BaseModel):
    """事件信封 {type, payload, seq, timestamp}"""
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    seq: int = 0
    timestamp: datetime = Field(default_factory=now_utc)

    def to_message(self) -> dict[str, Any]:
        """转换为可直接 JSON 编码的字典"""
        return self.model_dump(mode="json")


def task_created(task: Task) -> Event:
    return Event(type=EventType.TASK_CREATED.value, payload={"task": task.model_dump(mode="json")})


def task_updated(task: Task) -> Event:
    return Event(type=EventType.TASK_UPDATED.value, payload={"task": task.model_dump(mode="json")})


def task_deleted(task_id: str) -> Event:
    return Event(type=EventType.TASK_DELETED.value, payload={"task_id": task_id})


def user_joined(user: User) -> Event:
    return Event(type=EventType.USER_JOINED.value, payload={"user": user.model_dump(mode="json")})


def user_left(user: User) -> Event:
    return Event(type=EventType.USER_LEFT.value, payload={"user": user.model_dump(mode="json")})


class EventPublisher(ABC):
    """事件发布者接口，publish 不得阻塞也不得抛出异常"""

    @abstractmethod
    def publish(self, event: Event) -> None:
        pass


class NullPublisher(EventPublisher):
    """丢弃所有事件的发布者"""

    def publish(self, event: Event) -> None:
        return None


__all__ = [
    "Event",
    "EventPublisher",
    "NullPublisher",
    "task_created",
    "task_updated",
    "task_deleted",
    "user_joined",
    "user_left",
]
