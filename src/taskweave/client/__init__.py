"""
客户端模块

- api_client: REST 客户端与错误信封还原
- realtime: WebSocket 实时通道
- reconnect: 指数退避重连状态机
- task_cache: 乐观更新的本地任务镜像
- response_cache: GET 响应缓存
- viewer: 组合以上组件的任务查看者
"""

from taskweave.client.api_client import TaskApiClient, raise_for_envelope
from taskweave.client.realtime import RealtimeChannel
from taskweave.client.reconnect import ConnectionState, ReconnectConfig, ReconnectionManager
from taskweave.client.response_cache import CacheConfig, ResponseCache
from taskweave.client.task_cache import PendingMutation, TaskCache
from taskweave.client.viewer import TaskViewer

__all__ = [
    "TaskApiClient",
    "raise_for_envelope",
    "RealtimeChannel",
    "ConnectionState",
    "ReconnectConfig",
    "ReconnectionManager",
    "CacheConfig",
    "ResponseCache",
    "PendingMutation",
    "TaskCache",
    "TaskViewer",
]
