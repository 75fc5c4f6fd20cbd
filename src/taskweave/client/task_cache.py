"""
客户端任务镜像

单个查看者的本地任务视图：
- 乐观写入立即生效，返回携带快照的 PendingMutation
- 服务端结果（响应或推送事件）整体覆盖本地字段，不做字段级合并
- 版本低于已应用版本、或已被删除的任务的载荷会被忽略
- 回滚时若期间已收到该任务的权威载荷，则保留权威值
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from taskweave.common.exceptions import NotFoundError
from taskweave.domain.enums import EventType, TaskPriority, TaskStatus
from taskweave.domain.events import Event
from taskweave.domain.models import Task


@dataclass
class PendingMutation:
    """尚未被服务端确认的乐观变更"""

    kind: str  # create / update / delete
    task_id: str
    snapshot: Task | None
    base_version: int | None
    mark: int
    changes: dict[str, Any] = field(default_factory=dict)


class TaskCache:
    """任务镜像（同步，非线程安全）"""

    def __init__(self):
        self._tasks: dict[str, Task] = {}
        self._versions: dict[str, int] = {}
        self._tombstones: set[str] = set()
        # 每个任务最近一次应用权威载荷时的计数
        self._marks: dict[str, int] = {}
        self._counter = 0
        self.last_seq = 0
        self.gap_detected = False

    # ==================== 乐观写入 ====================

    def begin_create(self, temp_task: Task) -> PendingMutation:
        self._tasks[temp_task.id] = temp_task.model_copy(deep=True)
        return PendingMutation(
            kind="create",
            task_id=temp_task.id,
            snapshot=None,
            base_version=None,
            mark=self._counter,
        )

    def begin_update(self, task_id: str, changes: dict[str, Any]) -> PendingMutation:
        current = self._require(task_id)
        self._tasks[task_id] = current.model_copy(update=changes)
        return PendingMutation(
            kind="update",
            task_id=task_id,
            snapshot=current.model_copy(deep=True),
            base_version=current.version,
            mark=self._counter,
            changes=dict(changes),
        )

    def begin_delete(self, task_id: str) -> PendingMutation:
        current = self._require(task_id)
        del self._tasks[task_id]
        return PendingMutation(
            kind="delete",
            task_id=task_id,
            snapshot=current.model_copy(deep=True),
            base_version=current.version,
            mark=self._counter,
        )

    def confirm(self, pending: PendingMutation, server_task: Task | None = None) -> None:
        """应用服务端确认结果；创建时用服务端 ID 替换临时条目"""
        if pending.kind == "create":
            self._tasks.pop(pending.task_id, None)
            if server_task:
                self._apply_task(server_task)
        elif pending.kind == "update":
            if server_task:
                self._apply_task(server_task)
        elif pending.kind == "delete":
            self._apply_delete(pending.task_id)

    def rollback(self, pending: PendingMutation) -> bool:
        """撤销乐观变更

        Returns:
            是否恢复了快照；期间已收到权威载荷时返回 False
        """
        task_id = pending.task_id
        if pending.kind == "create":
            self._tasks.pop(task_id, None)
            return True

        if self._marks.get(task_id, 0) > pending.mark:
            logger.debug(f"任务 {task_id} 已有更新的权威数据，跳过回滚")
            return False

        if pending.snapshot is not None:
            self._tasks[task_id] = pending.snapshot.model_copy(deep=True)
        return True

    # ==================== 权威数据 ====================

    def apply_event(self, event: Event | dict[str, Any]) -> bool:
        """应用推送事件，返回镜像是否发生变化"""
        if isinstance(event, dict):
            event = Event.model_validate(event)

        self._track_seq(event.seq)

        if event.type in (EventType.TASK_CREATED.value, EventType.TASK_UPDATED.value):
            return self._apply_task(Task.model_validate(event.payload["task"]))
        if event.type == EventType.TASK_DELETED.value:
            return self._apply_delete(event.payload["task_id"])
        return False

    def apply_task(self, task: Task) -> bool:
        """应用单条权威任务（如 GET 响应）"""
        return self._apply_task(task)

    def begin_sync(self) -> int:
        """全量拉取前调用，返回当前计数作为标记

        序号跟踪从此重新开始：断线期间的序号与重连后的推送不连续是预期内的。
        """
        self.last_seq = 0
        self.gap_detected = False
        return self._counter

    def load(self, tasks: list[Task], since: int | None = None) -> None:
        """全量同步：替换镜像

        Args:
            tasks: 服务端任务快照
            since: begin_sync() 返回的标记。提供时，拉取期间已应用的权威载荷
                （含删除标记）不会被快照覆盖，除非快照版本更高
        """
        fresh = set() if since is None else {
            task_id for task_id, mark in self._marks.items() if mark > since
        }
        self._counter += 1

        loaded: dict[str, Task] = {}
        versions: dict[str, int] = {}
        marks: dict[str, int] = {}
        for task in tasks:
            if task.id in fresh and (
                task.id in self._tombstones or task.version <= self._versions.get(task.id, 0)
            ):
                continue
            loaded[task.id] = task.model_copy(deep=True)
            versions[task.id] = task.version
            marks[task.id] = self._counter

        for task_id in fresh:
            if task_id in loaded:
                continue
            marks[task_id] = self._marks[task_id]
            if task_id in self._tasks:
                loaded[task_id] = self._tasks[task_id]
                versions[task_id] = self._versions[task_id]

        self._tasks = loaded
        self._versions = versions
        self._marks = marks
        self._tombstones = {task_id for task_id in self._tombstones if task_id in fresh}
        if since is None:
            self.last_seq = 0
        self.gap_detected = False
        logger.debug(f"任务镜像已全量同步: {len(tasks)} 条，保留拉取期间更新 {len(fresh)} 条")

    def _apply_task(self, task: Task) -> bool:
        if task.id in self._tombstones:
            logger.debug(f"忽略已删除任务的载荷: {task.id}")
            return False
        if task.version < self._versions.get(task.id, 0):
            logger.debug(f"忽略过期载荷: {task.id} v{task.version}")
            return False

        self._counter += 1
        self._tasks[task.id] = task.model_copy(deep=True)
        self._versions[task.id] = task.version
        self._marks[task.id] = self._counter
        return True

    def _apply_delete(self, task_id: str) -> bool:
        self._counter += 1
        self._tombstones.add(task_id)
        self._marks[task_id] = self._counter
        return self._tasks.pop(task_id, None) is not None

    def _track_seq(self, seq: int) -> None:
        # 定向消息 seq 为 0，不参与连续性检查
        if seq <= 0:
            return
        if self.last_seq and seq > self.last_seq + 1:
            logger.warning(f"事件序号不连续: {self.last_seq} -> {seq}")
            self.gap_detected = True
        self.last_seq = max(self.last_seq, seq)

    # ==================== 查询 ====================

    def get(self, task_id: str) -> Task | None:
        task = self._tasks.get(task_id)
        return task.model_copy(deep=True) if task else None

    def all(self) -> list[Task]:
        return sorted(
            (t.model_copy(deep=True) for t in self._tasks.values()),
            key=lambda t: t.created_at,
        )

    def can_complete(self, task_id: str) -> bool:
        task = self._tasks.get(task_id)
        if not task:
            return False
        return all(
            d in self._tasks and self._tasks[d].status == TaskStatus.DONE
            for d in task.dependencies
        )

    def blocked(self) -> list[Task]:
        return [
            t for t in self.all() if t.status != TaskStatus.DONE and not self.can_complete(t.id)
        ]

    def for_user(self, user_id: str) -> list[Task]:
        return [t for t in self.all() if t.assigned_user_id == user_id]

    def dependencies_of(self, task_id: str) -> list[Task]:
        task = self._tasks.get(task_id)
        if not task:
            return []
        return [self._tasks[d].model_copy(deep=True) for d in task.dependencies if d in self._tasks]

    def dependents_of(self, task_id: str) -> list[Task]:
        return [t for t in self.all() if task_id in t.dependencies]

    def filter(
        self,
        status: list[TaskStatus] | None = None,
        priority: list[TaskPriority] | None = None,
        assigned_user_id: str | None = None,
        search: str | None = None,
        sort_by: str = "created_at",
        descending: bool = True,
    ) -> list[Task]:
        """按状态、优先级、负责人与关键字过滤并排序"""
        tasks = self.all()
        if status:
            tasks = [t for t in tasks if t.status in status]
        if priority:
            tasks = [t for t in tasks if t.priority in priority]
        if assigned_user_id:
            tasks = [t for t in tasks if t.assigned_user_id == assigned_user_id]
        if search:
            term = search.lower()
            tasks = [
                t
                for t in tasks
                if term in t.title.lower() or (t.description and term in t.description.lower())
            ]
        tasks.sort(key=lambda t: _sort_key(getattr(t, sort_by)), reverse=descending)
        return tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._tasks

    def _require(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if not task:
            raise NotFoundError("任务", task_id)
        return task


def _sort_key(value):
    if isinstance(value, TaskStatus | TaskPriority):
        return value.value
    return value if value is not None else ""
