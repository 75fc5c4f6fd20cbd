"""
查看者测试

以 AsyncMock 替换 REST 客户端，验证乐观写入的回滚、通知与重连后的全量同步。
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from taskweave.client.api_client import TaskApiClient
from taskweave.client.response_cache import CacheConfig, ResponseCache
from taskweave.client.viewer import TaskViewer
from taskweave.common.exceptions import NotFoundError, ValidationError, VersionConflictError
from taskweave.common.time import now_utc
from taskweave.domain import events
from taskweave.domain.models import Task


def make_task(task_id: str, version: int = 1, **kwargs) -> Task:
    now = now_utc()
    return Task(id=task_id, title=kwargs.pop("title", task_id), created_at=now, updated_at=now,
                version=version, **kwargs)


@pytest.fixture
def api():
    client = MagicMock(spec=TaskApiClient)
    client.cache = ResponseCache(CacheConfig())
    client.list_tasks = AsyncMock(return_value=[make_task("a")])
    return client


@pytest.fixture
def notices():
    return []


@pytest.fixture
def viewer(api, notices):
    return TaskViewer(api, on_notify=lambda message, error: notices.append((message, error)))


class TestTaskViewer:
    """TaskViewer 测试"""

    def test_registers_channel_callbacks(self, api):
        channel = MagicMock()
        TaskViewer(api, channel=channel)
        registered = {call.args[0] for call in channel.on.call_args_list}
        assert registered == {"event", "connected", "error"}

    @pytest.mark.asyncio
    async def test_reconnect_triggers_full_resync(self, viewer, api):
        await viewer._on_connected(False)
        api.list_tasks.assert_not_called()

        await viewer._on_connected(True)
        api.list_tasks.assert_awaited_once_with(use_cache=False)
        assert [t.id for t in viewer.tasks()] == ["a"]

    @pytest.mark.asyncio
    async def test_failed_create_removes_temp_entry(self, viewer, api, notices):
        api.create_task = AsyncMock(side_effect=ValidationError("依赖任务不存在", field="dependencies"))

        with pytest.raises(ValidationError):
            await viewer.create_task(title="X")

        assert viewer.tasks() == []
        assert len(notices) == 1
        assert "依赖任务不存在" in notices[0][0]

    @pytest.mark.asyncio
    async def test_failed_delete_restores_entry(self, viewer, api):
        await viewer.resync()
        api.delete_task = AsyncMock(side_effect=NotFoundError("任务", "a"))

        with pytest.raises(NotFoundError):
            await viewer.delete_task("a")

        assert viewer.get_task("a") is not None

    @pytest.mark.asyncio
    async def test_update_sends_cached_version(self, viewer, api):
        await viewer.resync()
        api.update_task = AsyncMock(return_value=make_task("a", version=2, title="Y"))

        task = await viewer.update_task("a", title="Y")

        assert task.version == 2
        assert api.update_task.await_args.kwargs["expected_version"] == 1
        assert viewer.get_task("a").title == "Y"

    @pytest.mark.asyncio
    async def test_version_conflict_refreshes_task(self, viewer, api):
        await viewer.resync()
        api.update_task = AsyncMock(side_effect=VersionConflictError("a", 1, 2))
        detail = MagicMock()
        detail.task = make_task("a", version=2, title="远端")
        api.get_task = AsyncMock(return_value=detail)

        with pytest.raises(VersionConflictError):
            await viewer.update_task("a", title="本地")

        assert viewer.get_task("a").title == "远端"

    @pytest.mark.asyncio
    async def test_task_event_invalidates_response_cache(self, viewer, api):
        api.cache.set("/api/tasks", [])
        await viewer.handle_event(events.task_created(make_task("b")).to_message())

        assert len(api.cache) == 0
        assert viewer.get_task("b") is not None

    @pytest.mark.asyncio
    async def test_channel_error_notifies(self, viewer, notices):
        viewer._on_channel_error({"error": "AUTHENTICATION_ERROR", "message": "会话无效或已过期"})
        assert notices == [("会话无效或已过期", None)]

    @pytest.mark.asyncio
    async def test_event_during_resync_not_overwritten(self, viewer, api):
        """全量拉取期间收到的更新版本不会被较旧的快照覆盖"""
        await viewer.resync()

        async def list_during_update(use_cache=True):
            newer = make_task("a", version=2, title="v2")
            await viewer.handle_event(events.task_updated(newer).model_copy(update={"seq": 7}))
            return [make_task("a", title="v1")]

        api.list_tasks = AsyncMock(side_effect=list_during_update)
        await viewer.resync()

        assert viewer.get_task("a").version == 2
        assert viewer.get_task("a").title == "v2"
        assert viewer.cache.last_seq == 7
