"""
内存存储测试

验证存取、删除、排序以及返回副本的行为。
"""

from datetime import timedelta

import pytest

from taskweave.common.time import now_utc
from taskweave.domain.models import Task, User
from taskweave.infrastructure.store import InMemoryStore, create_store


def _task(task_id: str, offset: int = 0, **kwargs) -> Task:
    created = now_utc() + timedelta(seconds=offset)
    return Task(id=task_id, title=f"任务 {task_id}", created_at=created, updated_at=created, **kwargs)


class TestInMemoryStore:
    """InMemoryStore 测试"""

    @pytest.mark.asyncio
    async def test_put_and_get_task(self):
        """写入后可以读回"""
        store = InMemoryStore()
        await store.put_task(_task("t1"))

        task = await store.get_task("t1")
        assert task is not None
        assert task.title == "任务 t1"
        assert await store.get_task("missing") is None

    @pytest.mark.asyncio
    async def test_returned_task_is_copy(self):
        """修改读取结果不影响已存储数据"""
        store = InMemoryStore()
        await store.put_task(_task("t1", dependencies=["x"]))

        task = await store.get_task("t1")
        task.dependencies.append("y")

        stored = await store.get_task("t1")
        assert stored.dependencies == ["x"]

    @pytest.mark.asyncio
    async def test_delete_task(self):
        """删除返回是否存在"""
        store = InMemoryStore()
        await store.put_task(_task("t1"))

        assert await store.delete_task("t1") is True
        assert await store.delete_task("t1") is False
        assert await store.get_task("t1") is None

    @pytest.mark.asyncio
    async def test_list_tasks_sorted_by_created_at(self):
        """列表按创建时间升序"""
        store = InMemoryStore()
        await store.put_task(_task("late", offset=10))
        await store.put_task(_task("early", offset=-10))
        await store.put_task(_task("middle"))

        ids = [t.id for t in await store.list_tasks()]
        assert ids == ["early", "middle", "late"]

    @pytest.mark.asyncio
    async def test_user_lookup_by_username(self):
        """按用户名查找用户"""
        store = InMemoryStore()
        user = User(id="u1", username="alice", email="a@example.com", created_at=now_utc())
        await store.put_user(user)

        assert (await store.get_user("u1")).username == "alice"
        assert (await store.get_user_by_username("alice")).id == "u1"
        assert await store.get_user_by_username("bob") is None
        assert [u.id for u in await store.list_users()] == ["u1"]

    @pytest.mark.asyncio
    async def test_delete_user_updates_username_index(self):
        """删除用户后用户名索引同步移除"""
        store = InMemoryStore()
        await store.put_user(User(id="u1", username="alice", email="a@example.com", created_at=now_utc()))

        assert await store.delete_user("u1") is True
        assert await store.delete_user("u1") is False
        assert await store.get_user("u1") is None
        assert await store.get_user_by_username("alice") is None
        assert await store.list_users() == []

        await store.put_user(User(id="u2", username="alice", email="b@example.com", created_at=now_utc()))
        assert (await store.get_user_by_username("alice")).id == "u2"


class TestCreateStore:
    """存储工厂测试"""

    def test_memory_backend(self):
        assert isinstance(create_store("memory"), InMemoryStore)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_store("redis")
