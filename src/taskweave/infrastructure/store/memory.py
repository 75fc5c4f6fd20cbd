"""内存存储实现

基于内存字典实现的易失性存储，进程退出即丢失。
"""

import threading

from taskweave.domain.models import Task, User
from taskweave.infrastructure.store.base import Store


class InMemoryStore(Store):
    """内存存储实现

    使用 RLock 保护内部字典，单次读写对任意线程都是原子的。
    所有读取都返回深拷贝，避免外部修改已提交的数据。

    适用于单机开发和测试环境。
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._tasks: dict[str, Task] = {}
        self._users: dict[str, User] = {}
        # 用户名索引: {username: user_id}
        self._usernames: dict[str, str] = {}

    async def get_task(self, task_id: str) -> Task | None:
        with self._lock:
            task = self._tasks.get(task_id)
            # 返回副本避免外部修改
            return task.model_copy(deep=True) if task else None

    async def put_task(self, task: Task) -> None:
        with self._lock:
            self._tasks[task.id] = task.model_copy(deep=True)

    async def delete_task(self, task_id: str) -> bool:
        with self._lock:
            return self._tasks.pop(task_id, None) is not None

    async def list_tasks(self) -> list[Task]:
        with self._lock:
            tasks = [t.model_copy(deep=True) for t in self._tasks.values()]
        tasks.sort(key=lambda t: t.created_at)
        return tasks

    async def get_user(self, user_id: str) -> User | None:
        with self._lock:
            return self._users.get(user_id)

    async def get_user_by_username(self, username: str) -> User | None:
        with self._lock:
            user_id = self._usernames.get(username)
            return self._users.get(user_id) if user_id else None

    async def put_user(self, user: User) -> None:
        # User 为不可变模型，无需拷贝
        with self._lock:
            self._users[user.id] = user
            self._usernames[user.username] = user.id

    async def delete_user(self, user_id: str) -> bool:
        with self._lock:
            user = self._users.pop(user_id, None)
            if user is None:
                return False
            if self._usernames.get(user.username) == user_id:
                del self._usernames[user.username]
            return True

    async def list_users(self) -> list[User]:
        with self._lock:
            users = list(self._users.values())
        users.sort(key=lambda u: u.created_at)
        return users
