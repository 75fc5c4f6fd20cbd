"""存储后端抽象基类

定义 Task / User 记录的存储接口。存储层只负责按键存取，
不包含任何业务规则，业务校验由 MutationGateway 完成。
"""

from abc import ABC, abstractmethod

from taskweave.domain.models import Task, User


class Store(ABC):
    """权威数据存储抽象基类

    定义存储操作的标准接口：
    - 任务的获取、写入、删除和列举
    - 用户的获取、写入和列举

    实现需保证单次 put / delete 相对于读取是原子的，
    且返回值为副本，调用方修改不会影响已存储的数据。
    """

    # ========== 任务 ==========

    @abstractmethod
    async def get_task(self, task_id: str) -> Task | None:
        """获取任务

        Args:
            task_id: 任务 ID

        Returns:
            任务副本，不存在时返回 None
        """
        pass

    @abstractmethod
    async def put_task(self, task: Task) -> None:
        """写入任务（新增或整体替换）"""
        pass

    @abstractmethod
    async def delete_task(self, task_id: str) -> bool:
        """删除任务

        Returns:
            是否确实删除了记录
        """
        pass

    @abstractmethod
    async def list_tasks(self) -> list[Task]:
        """列出所有任务，按创建时间升序"""
        pass

    # ========== 用户 ==========

    @abstractmethod
    async def get_user(self, user_id: str) -> User | None:
        """获取用户"""
        pass

    @abstractmethod
    async def get_user_by_username(self, username: str) -> User | None:
        """按用户名获取用户"""
        pass

    @abstractmethod
    async def put_user(self, user: User) -> None:
        """写入用户"""
        pass

    @abstractmethod
    async def delete_user(self, user_id: str) -> bool:
        """删除用户

        Returns:
            是否确实删除了记录
        """
        pass

    @abstractmethod
    async def list_users(self) -> list[User]:
        """列出所有用户"""
        pass

    async def close(self) -> None:
        """释放资源"""
        return None


def create_store(backend: str = "memory") -> Store:
    """工厂方法：根据后端类型返回存储实现

    Args:
        backend: 后端类型，目前仅支持 "memory"

    Raises:
        ValueError: 无效的后端类型
    """
    backend_type = backend.lower().strip()

    if backend_type == "memory":
        from taskweave.infrastructure.store.memory import InMemoryStore
        return InMemoryStore()

    raise ValueError(f"未知的存储后端: {backend}")
