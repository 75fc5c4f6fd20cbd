"""任务变更网关

依赖一致性引擎：所有任务写操作都在这里完成"校验 - 提交 - 发布"。

- 同一时刻只有一个提交者（asyncio.Lock），校验与提交之间不会插入其他写入
- 标记完成前要求直接依赖全部为 Done
- 被其他任务依赖的任务不允许删除
- 依赖图保持无环
- 每次成功提交后恰好发布一个事件，发布失败不影响变更结果
"""

import asyncio
from typing import Any

import pydantic
from loguru import logger

from taskweave.common.config import settings
from taskweave.common.exceptions import (
    ConflictError,
    DependencyUnmetError,
    NotFoundError,
    ValidationError,
    VersionConflictError,
)
from taskweave.common.ids import generate_uuid
from taskweave.common.time import now_utc
from taskweave.domain import events
from taskweave.domain.enums import TaskStatus
from taskweave.domain.events import Event, EventPublisher, NullPublisher
from taskweave.domain.models import Task
from taskweave.domain.schemas import (
    TaskCreateRequest,
    TaskDetailResponse,
    TaskStatsResponse,
    TaskUpdateRequest,
)
from taskweave.infrastructure.store.base import Store


def _coerce(model, data):
    """将字典转换为请求模型，格式错误统一转为 ValidationError"""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(loc) for loc in first.get("loc", ())) or None
        raise ValidationError(first.get("msg", "请求参数验证失败"), field=field) from e


def would_create_cycle(task_id: str, dependencies: list[str], graph: dict[str, list[str]]) -> bool:
    """检查让 task_id 依赖 dependencies 后是否会形成环

    Args:
        task_id: 被修改的任务 ID
        dependencies: 新的依赖集合
        graph: 现有依赖图 {task_id: [dependency_id, ...]}

    Returns:
        任一依赖能沿依赖边回到 task_id 时返回 True
    """
    visited: set[str] = set()
    stack = list(dependencies)

    while stack:
        current = stack.pop()
        if current == task_id:
            return True
        if current in visited:
            continue
        visited.add(current)
        stack.extend(graph.get(current, ()))

    return False


class MutationGateway:
    """任务变更网关"""

    def __init__(
        self,
        store: Store,
        publisher: EventPublisher | None = None,
        cycle_check: bool | None = None,
    ):
        self._store = store
        self._publisher = publisher or NullPublisher()
        self._cycle_check = settings.DEPENDENCY_CYCLE_CHECK if cycle_check is None else cycle_check
        self._commit_lock = asyncio.Lock()

    # ========== 写操作 ==========

    async def create_task(self, data: TaskCreateRequest | dict[str, Any]) -> Task:
        """创建任务

        Raises:
            ValidationError: 负责人或依赖任务不存在
        """
        request = _coerce(TaskCreateRequest, data)

        async with self._commit_lock:
            await self._validate_assignee(request.assigned_user_id)
            await self._validate_dependencies_exist(request.dependencies)

            task_id = generate_uuid()
            if task_id in request.dependencies:
                raise ValidationError("任务不能依赖自身", field="dependencies")

            now = now_utc()
            task = Task(
                id=task_id,
                title=request.title,
                description=request.description,
                priority=request.priority,
                status=request.status,
                assigned_user_id=request.assigned_user_id,
                dependencies=list(request.dependencies),
                created_at=now,
                updated_at=now,
                version=1,
            )
            await self._store.put_task(task)
            self._publish(events.task_created(task))

        logger.info(f"任务已创建: {task.id} ({task.title})")
        return task

    async def update_task(
        self,
        task_id: str,
        changes: TaskUpdateRequest | dict[str, Any],
        expected_version: int | None = None,
    ) -> Task:
        """更新任务，只合并显式提供的字段

        Args:
            task_id: 任务 ID
            changes: 变更内容
            expected_version: 调用方最后读取的版本，提供时做过期检查

        Raises:
            NotFoundError: 任务不存在
            VersionConflictError: 版本已过期
            ValidationError: 依赖或负责人无效，或依赖形成环
            DependencyUnmetError: 标记完成但依赖未全部完成
        """
        request = _coerce(TaskUpdateRequest, changes)
        fields = request.changes()

        async with self._commit_lock:
            current = await self._require_task(task_id)
            self._check_version(current, expected_version)

            if "dependencies" in fields:
                dependencies = fields["dependencies"]
                if task_id in dependencies:
                    raise ValidationError("任务不能依赖自身", field="dependencies")
                await self._validate_dependencies_exist(dependencies)
                if self._cycle_check:
                    graph = {t.id: t.dependencies for t in await self._store.list_tasks()}
                    if would_create_cycle(task_id, dependencies, graph):
                        raise ValidationError("依赖关系形成循环", field="dependencies")

            if fields.get("assigned_user_id") is not None:
                await self._validate_assignee(fields["assigned_user_id"])

            if fields.get("status") == TaskStatus.DONE:
                effective = fields.get("dependencies", current.dependencies)
                pending = await self._pending_dependencies(effective)
                if pending:
                    raise DependencyUnmetError(task_id, pending)

            now = now_utc()
            updated = current.model_copy(
                update={
                    **fields,
                    "updated_at": max(now, current.updated_at),
                    "version": current.version + 1,
                }
            )
            await self._store.put_task(updated)
            self._publish(events.task_updated(updated))

        logger.info(f"任务已更新: {task_id} v{updated.version} 字段={sorted(fields)}")
        return updated

    async def delete_task(self, task_id: str, expected_version: int | None = None) -> Task:
        """删除任务

        Raises:
            NotFoundError: 任务不存在
            VersionConflictError: 版本已过期
            ConflictError: 仍有其他任务依赖该任务
        """
        async with self._commit_lock:
            current = await self._require_task(task_id)
            self._check_version(current, expected_version)

            dependents = await self._dependents_of(task_id)
            if dependents:
                raise ConflictError(
                    f"任务 {task_id} 被 {len(dependents)} 个任务依赖，无法删除"
                )

            await self._store.delete_task(task_id)
            self._publish(events.task_deleted(task_id))

        logger.info(f"任务已删除: {task_id}")
        return current

    async def mark_complete(self, task_id: str, expected_version: int | None = None) -> Task:
        """将任务标记为完成"""
        return await self.update_task(task_id, {"status": TaskStatus.DONE}, expected_version)

    # ========== 查询 ==========

    async def can_complete(self, task_id: str) -> bool:
        """任务存在且所有直接依赖均为 Done 时返回 True，缺失的依赖视为未满足"""
        task = await self._store.get_task(task_id)
        if not task:
            return False
        return not await self._pending_dependencies(task.dependencies)

    async def get_blocked(self) -> list[Task]:
        """所有未完成且当前无法完成的任务"""
        tasks = await self._store.list_tasks()
        index = {t.id: t for t in tasks}
        return [
            t
            for t in tasks
            if not t.is_done and not all(d in index and index[d].is_done for d in t.dependencies)
        ]

    async def get_dependents(self, task_id: str) -> list[Task]:
        """依赖 task_id 的所有任务"""
        return await self._dependents_of(task_id)

    async def get_task(self, task_id: str) -> Task:
        return await self._require_task(task_id)

    async def get_task_detail(self, task_id: str) -> TaskDetailResponse:
        task = await self._require_task(task_id)
        return TaskDetailResponse(
            task=task,
            dependencies=await self._resolve(task.dependencies),
            dependents=await self._dependents_of(task_id),
        )

    async def get_dependencies(self, task_id: str) -> list[Task]:
        """已解析的依赖任务，缺失的 ID 被跳过"""
        task = await self._require_task(task_id)
        return await self._resolve(task.dependencies)

    async def list_tasks(self) -> list[Task]:
        return await self._store.list_tasks()

    async def list_tasks_for_user(self, user_id: str) -> list[Task]:
        return [t for t in await self._store.list_tasks() if t.assigned_user_id == user_id]

    async def get_stats(self, tasks: list[Task] | None = None) -> TaskStatsResponse:
        """任务总数及按状态计数"""
        if tasks is None:
            tasks = await self._store.list_tasks()
        by_status = {status.value: 0 for status in TaskStatus}
        for task in tasks:
            by_status[task.status.value] += 1
        return TaskStatsResponse(total=len(tasks), by_status=by_status)

    # ========== 内部方法 ==========

    async def _require_task(self, task_id: str) -> Task:
        task = await self._store.get_task(task_id)
        if not task:
            raise NotFoundError("任务", task_id)
        return task

    @staticmethod
    def _check_version(task: Task, expected_version: int | None) -> None:
        if expected_version is not None and expected_version != task.version:
            raise VersionConflictError(task.id, expected_version, task.version)

    async def _validate_assignee(self, user_id: str | None) -> None:
        if user_id is None:
            return
        if not await self._store.get_user(user_id):
            raise ValidationError(f"负责人 {user_id} 不存在", field="assigned_user_id")

    async def _validate_dependencies_exist(self, dependencies: list[str]) -> None:
        for dep_id in dependencies:
            if not await self._store.get_task(dep_id):
                raise ValidationError(f"依赖任务 {dep_id} 不存在", field="dependencies")

    async def _pending_dependencies(self, dependencies: list[str]) -> list[str]:
        pending = []
        for dep_id in dependencies:
            dep = await self._store.get_task(dep_id)
            if not dep or not dep.is_done:
                pending.append(dep_id)
        return pending

    async def _dependents_of(self, task_id: str) -> list[Task]:
        return [
            t
            for t in await self._store.list_tasks()
            if t.id != task_id and task_id in t.dependencies
        ]

    async def _resolve(self, ids: list[str]) -> list[Task]:
        resolved = []
        for dep_id in ids:
            task = await self._store.get_task(dep_id)
            if task:
                resolved.append(task)
        return resolved

    def _publish(self, event: Event) -> None:
        try:
            self._publisher.publish(event)
        except Exception as e:
            logger.error(f"事件发布失败: {event.type}, 错误: {e}")
