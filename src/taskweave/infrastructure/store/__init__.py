"""存储层

提供权威数据存储的抽象接口和内存实现。
"""

from taskweave.infrastructure.store.base import Store, create_store
from taskweave.infrastructure.store.memory import InMemoryStore

__all__ = [
    "Store",
    "InMemoryStore",
    "create_store",
]
