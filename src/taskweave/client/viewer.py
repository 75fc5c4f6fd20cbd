"""
任务查看者

组合 REST 客户端、实时通道与本地任务镜像：
- 写操作先乐观应用到镜像，再携带版本号提交；失败时回滚并通知
- 推送事件以服务端结果覆盖镜像，序号断档时全量同步
- 断线重连后全量同步
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from loguru import logger

from taskweave.client.api_client import TASKS_PREFIX, TaskApiClient
from taskweave.client.realtime import RealtimeChannel
from taskweave.client.task_cache import PendingMutation, TaskCache
from taskweave.common.exceptions import TaskweaveException, VersionConflictError
from taskweave.common.ids import generate_temp_id
from taskweave.common.time import now_utc
from taskweave.domain.enums import EventType, TaskStatus
from taskweave.domain.events import Event
from taskweave.domain.models import Task, User
from taskweave.domain.schemas import TaskCreateRequest, TaskUpdateRequest


class TaskViewer:
    """单个查看者的任务视图"""

    def __init__(
        self,
        api: TaskApiClient,
        channel: RealtimeChannel | None = None,
        cache: TaskCache | None = None,
        on_notify: Callable[[str, TaskweaveException | None], Any] | None = None,
    ):
        self.api = api
        self.channel = channel
        self.cache = cache or TaskCache()
        self.user: User | None = None
        self.online_users: dict[str, User] = {}
        self._on_notify = on_notify
        self._resync_lock = asyncio.Lock()

        if channel is not None:
            channel.on("event", self.handle_event)
            channel.on("connected", self._on_connected)
            channel.on("error", self._on_channel_error)

    # ==================== 会话 ====================

    async def register(self, username: str, email: str) -> User:
        self.user, token = await self.api.register(username, email)
        self._bind_session(token)
        return self.user

    async def login(self, username: str) -> User:
        self.user, token = await self.api.login(username)
        self._bind_session(token)
        return self.user

    async def logout(self) -> None:
        if self.channel is not None:
            await self.channel.leave()
        await self.api.logout()
        self.user = None

    async def start(self) -> None:
        """全量拉取后接入实时通道"""
        await self.resync()
        if self.channel is not None:
            await self.channel.connect()

    async def stop(self) -> None:
        if self.channel is not None:
            await self.channel.close()

    async def resync(self) -> None:
        """绕过响应缓存拉取全部任务，替换本地镜像"""
        async with self._resync_lock:
            mark = self.cache.begin_sync()
            tasks = await self.api.list_tasks(use_cache=False)
            self.cache.load(tasks, since=mark)
            logger.info(f"已全量同步 {len(tasks)} 条任务")

    # ==================== 推送 ====================

    async def handle_event(self, event: Event | dict[str, Any]) -> bool:
        if isinstance(event, dict):
            event = Event.model_validate(event)

        changed = self.cache.apply_event(event)
        if event.type == EventType.USER_JOINED.value:
            user = User.model_validate(event.payload["user"])
            self.online_users[user.id] = user
        elif event.type == EventType.USER_LEFT.value:
            self.online_users.pop(event.payload["user"]["id"], None)
        elif changed:
            self.api.cache.invalidate(TASKS_PREFIX)

        if self.cache.gap_detected:
            await self.resync()
        return changed

    async def _on_connected(self, resync: bool) -> None:
        if resync:
            self.online_users.clear()
            await self.resync()

    def _on_channel_error(self, payload: dict[str, Any]) -> None:
        self._notify(payload.get("message") or "实时通道错误")

    # ==================== 写操作 ====================

    async def create_task(self, **fields) -> Task:
        request = TaskCreateRequest.model_validate(fields)
        now = now_utc()
        temp = Task(**request.model_dump(), id=generate_temp_id(), created_at=now, updated_at=now)
        pending = self.cache.begin_create(temp)
        task = await self._submit(pending, self.api.create_task(request), "创建任务失败")
        self.cache.confirm(pending, task)
        return task

    async def update_task(self, task_id: str, **changes) -> Task:
        request = TaskUpdateRequest.model_validate(changes)
        pending = self.cache.begin_update(task_id, request.changes())
        task = await self._submit(
            pending,
            self.api.update_task(task_id, request, expected_version=pending.base_version),
            "更新任务失败",
        )
        self.cache.confirm(pending, task)
        return task

    async def complete_task(self, task_id: str) -> Task:
        pending = self.cache.begin_update(task_id, {"status": TaskStatus.DONE})
        task = await self._submit(
            pending,
            self.api.complete_task(task_id, expected_version=pending.base_version),
            "完成任务失败",
        )
        self.cache.confirm(pending, task)
        return task

    async def delete_task(self, task_id: str) -> None:
        pending = self.cache.begin_delete(task_id)
        await self._submit(
            pending,
            self.api.delete_task(task_id, expected_version=pending.base_version),
            "删除任务失败",
        )
        self.cache.confirm(pending)

    # ==================== 查询 ====================

    def tasks(self) -> list[Task]:
        return self.cache.all()

    def get_task(self, task_id: str) -> Task | None:
        return self.cache.get(task_id)

    def can_complete(self, task_id: str) -> bool:
        return self.cache.can_complete(task_id)

    def blocked_tasks(self) -> list[Task]:
        return self.cache.blocked()

    def my_tasks(self) -> list[Task]:
        if not self.user:
            return []
        return self.cache.for_user(self.user.id)

    # ==================== 私有方法 ====================

    def _bind_session(self, token: str) -> None:
        if self.channel is not None:
            self.channel.session_token = token

    async def _submit(self, pending: PendingMutation, call, title: str):
        try:
            return await call
        except TaskweaveException as e:
            self.cache.rollback(pending)
            logger.warning(f"{title} [{e.error_code}]: {e.message}")
            self._notify(f"{title}: {e.message}", e)
            if isinstance(e, VersionConflictError):
                await self._refresh(pending.task_id)
            raise

    async def _refresh(self, task_id: str) -> None:
        """版本冲突后拉取该任务的最新值"""
        try:
            detail = await self.api.get_task(task_id)
        except TaskweaveException as e:
            logger.debug(f"刷新任务 {task_id} 失败: {e.message}")
            return
        self.cache.apply_task(detail.task)

    def _notify(self, message: str, error: TaskweaveException | None = None) -> None:
        if not self._on_notify:
            return
        try:
            self._on_notify(message, error)
        except Exception as e:
            logger.error(f"通知回调异常: {e}")
