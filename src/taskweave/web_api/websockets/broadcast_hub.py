"""
WebSocket 广播中心
负责管理订阅连接的生命周期、在线成员表以及已提交事件的扇出推送

每个连接拥有一个有界发送队列和一个发送任务：
- publish 只做入队，不等待投递，变更路径永不阻塞
- 同一连接内按发布顺序投递
- 队列已满、发送失败或超时的连接会被移除
"""
import asyncio
import contextlib
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from fastapi import WebSocket
from loguru import logger

from taskweave.application.services.identity_service import IdentityService
from taskweave.common.config import settings
from taskweave.common.serialization import to_json
from taskweave.common.time import now_utc
from taskweave.domain import events
from taskweave.domain.enums import MessageType
from taskweave.domain.events import Event, EventPublisher
from taskweave.domain.models import User


class ConnectionState(Enum):
    """连接状态枚举"""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class ChannelInfo:
    """连接信息"""
    connection_id: str
    websocket: WebSocket
    queue: asyncio.Queue
    state: ConnectionState = ConnectionState.CONNECTING
    user: User | None = None
    sender_task: asyncio.Task | None = None
    connected_at: datetime = field(default_factory=now_utc)
    last_activity: datetime = field(default_factory=now_utc)
    messages_sent: int = 0
    messages_received: int = 0


class BroadcastHub(EventPublisher):
    """广播中心"""

    def __init__(
        self,
        identity: IdentityService | None = None,
        queue_size: int | None = None,
        send_timeout: float | None = None,
        max_connections: int | None = None,
    ):
        self.identity = identity
        self.queue_size = queue_size or settings.WEBSOCKET_QUEUE_SIZE
        self.send_timeout = send_timeout or settings.WEBSOCKET_SEND_TIMEOUT
        self.max_connections = max_connections or settings.WEBSOCKET_MAX_TOTAL_CONN
        self.ping_interval = settings.WEBSOCKET_PING_INTERVAL

        self._channels: dict[str, ChannelInfo] = {}
        self._lock = asyncio.Lock()
        self._seq = 0
        self._background: set[asyncio.Task] = set()
        self._started = True

        self._stats = {
            "total_connections": 0,
            "total_disconnections": 0,
            "events_published": 0,
            "messages_sent": 0,
            "messages_received": 0,
            "dropped_subscribers": 0,
            "errors_count": 0,
            "start_time": now_utc(),
        }

    # ==================== 连接生命周期 ====================

    def _generate_connection_id(self, websocket: WebSocket) -> str:
        """生成连接ID"""
        return f"ws_{id(websocket)}_{time.time_ns()}"

    async def connect(self, websocket: WebSocket) -> str:
        """接受连接、注册并启动发送任务，返回连接ID"""
        if len(self._channels) >= self.max_connections:
            logger.error(f"总连接数超限: {len(self._channels)}/{self.max_connections}")
            await websocket.close(code=1013, reason="连接数超限")
            raise ConnectionRefusedError("连接数超限")

        connection_id = self._generate_connection_id(websocket)
        await websocket.accept()

        channel = ChannelInfo(
            connection_id=connection_id,
            websocket=websocket,
            queue=asyncio.Queue(maxsize=self.queue_size),
        )

        async with self._lock:
            self._channels[connection_id] = channel
            channel.state = ConnectionState.CONNECTED
            channel.sender_task = asyncio.create_task(self._sender_loop(channel))

        self._stats["total_connections"] += 1
        logger.info(f"WebSocket连接建立: {connection_id}")

        self._enqueue(channel, self._control(MessageType.CONNECTED, {
            "connection_id": connection_id,
            "config": {"ping_interval": self.ping_interval},
        }))
        return connection_id

    async def disconnect(self, connection_id: str, reason: str = "客户端断开") -> None:
        """断开连接，已加入的用户广播 user_left"""
        async with self._lock:
            channel = self._channels.pop(connection_id, None)
            if not channel:
                return
            channel.state = ConnectionState.CLOSED
            user = channel.user
            channel.user = None

        self._stop_sender(channel)
        self._stats["total_disconnections"] += 1
        logger.info(f"WebSocket连接断开: {connection_id} ({reason})")

        if user:
            self.publish(events.user_left(user))

    async def shutdown(self) -> None:
        """关闭广播中心及所有连接"""
        logger.info("正在关闭WebSocket广播中心...")
        self._started = False

        async with self._lock:
            channels = list(self._channels.values())
            self._channels.clear()

        for channel in channels:
            channel.state = ConnectionState.CLOSED
            self._stop_sender(channel)
            with contextlib.suppress(Exception):
                await channel.websocket.close(code=1001, reason="服务器关闭")

        for task in list(self._background):
            task.cancel()

        logger.info(f"WebSocket广播中心已关闭，断开 {len(channels)} 个连接")

    # ==================== 成员管理 ====================

    async def join(self, connection_id: str, session_token: str | None) -> User | None:
        """会话加入：令牌有效则记录用户并广播 user_joined，否则仅向该连接发送错误"""
        channel = self._channels.get(connection_id)
        if not channel:
            return None

        user = await self.identity.verify_session(session_token) if self.identity else None
        if not user:
            logger.warning(f"会话无效，拒绝加入: {connection_id}")
            self._enqueue(channel, self._control(MessageType.ERROR, {
                "error": "AUTHENTICATION_ERROR",
                "message": "会话无效或已过期",
            }))
            return None

        async with self._lock:
            if channel.state != ConnectionState.CONNECTED:
                return None
            previous = channel.user
            channel.user = user

        if previous and previous.id == user.id:
            return user
        if previous:
            self.publish(events.user_left(previous))

        logger.info(f"用户加入: {user.username} ({connection_id})")
        self.publish(events.user_joined(user))
        return user

    async def leave(self, connection_id: str) -> User | None:
        """会话离开，广播 user_left"""
        async with self._lock:
            channel = self._channels.get(connection_id)
            if not channel or not channel.user:
                return None
            user = channel.user
            channel.user = None

        logger.info(f"用户离开: {user.username} ({connection_id})")
        self.publish(events.user_left(user))
        return user

    def get_connected_users(self) -> list[User]:
        """当前在线用户（去重）"""
        users: dict[str, User] = {}
        for channel in self._channels.values():
            if channel.user:
                users[channel.user.id] = channel.user
        return list(users.values())

    # ==================== 消息处理 ====================

    async def handle_client_message(self, connection_id: str, message: dict[str, Any]) -> None:
        """处理客户端消息"""
        channel = self._channels.get(connection_id)
        if not channel:
            return

        channel.last_activity = now_utc()
        channel.messages_received += 1
        self._stats["messages_received"] += 1

        message_type = message.get("type")
        payload = message.get("payload") or {}

        if message_type == MessageType.USER_JOIN.value:
            await self.join(connection_id, payload.get("session_token"))
        elif message_type == MessageType.USER_LEAVE.value:
            await self.leave(connection_id)
        elif message_type == MessageType.PING.value:
            self._enqueue(channel, self._control(MessageType.PONG, {}))
        else:
            logger.debug(f"收到未知客户端消息: {message_type}")
            self.send_error(connection_id, "VALIDATION_ERROR", f"未知消息类型: {message_type}")

    def send_error(self, connection_id: str, error_code: str, message: str) -> None:
        """仅向指定连接发送错误消息"""
        channel = self._channels.get(connection_id)
        if channel:
            self._enqueue(channel, self._control(MessageType.ERROR, {
                "error": error_code,
                "message": message,
            }))

    # ==================== 发布 ====================

    def publish(self, event: Event) -> Event:
        """向所有连接广播事件（只入队，不等待投递）"""
        self._seq += 1
        event = event.model_copy(update={"seq": self._seq})
        self._stats["events_published"] += 1

        # 预序列化消息（避免重复序列化）
        text = to_json(event.to_message())
        for channel in list(self._channels.values()):
            self._enqueue(channel, text)

        logger.debug(f"事件已发布: {event.type} seq={event.seq} 订阅者={len(self._channels)}")
        return event

    def send_to_user(self, user_id: str, event: Event) -> int:
        """定向推送给某用户的所有连接，返回投递的连接数

        定向消息不占用全局 seq，seq 保持为 0。
        """
        text = to_json(event.to_message())
        count = 0
        for channel in list(self._channels.values()):
            if channel.user and channel.user.id == user_id:
                if self._enqueue(channel, text):
                    count += 1
        return count

    def _enqueue(self, channel: ChannelInfo, message: str | Event) -> bool:
        if channel.state != ConnectionState.CONNECTED:
            return False
        if isinstance(message, Event):
            message = to_json(message.to_message())
        try:
            channel.queue.put_nowait(message)
            return True
        except asyncio.QueueFull:
            logger.warning(f"发送队列已满，移除订阅者: {channel.connection_id}")
            self._drop(channel, "发送队列已满")
            return False

    @staticmethod
    def _control(message_type: MessageType, payload: dict[str, Any]) -> Event:
        return Event(type=message_type.value, payload=payload)

    # ==================== 发送任务 ====================

    async def _sender_loop(self, channel: ChannelInfo) -> None:
        """按入队顺序逐条发送"""
        while True:
            message = await channel.queue.get()
            try:
                await asyncio.wait_for(
                    channel.websocket.send_text(message),
                    timeout=self.send_timeout,
                )
                channel.messages_sent += 1
                self._stats["messages_sent"] += 1
            except asyncio.CancelledError:
                raise
            except asyncio.TimeoutError:
                logger.warning(f"发送消息超时: {channel.connection_id}")
                self._drop(channel, "发送超时")
                return
            except Exception as e:
                logger.debug(f"发送消息失败: {channel.connection_id}, {e}")
                self._drop(channel, "发送失败")
                return

    def _drop(self, channel: ChannelInfo, reason: str) -> None:
        """移除订阅者，不阻塞调用方"""
        if channel.state != ConnectionState.CONNECTED:
            return
        channel.state = ConnectionState.CLOSING
        self._stats["dropped_subscribers"] += 1
        self._stats["errors_count"] += 1
        task = asyncio.create_task(self._close_dropped(channel, reason))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _close_dropped(self, channel: ChannelInfo, reason: str) -> None:
        await self.disconnect(channel.connection_id, reason)
        with contextlib.suppress(Exception):
            await channel.websocket.close(code=1011, reason=reason)

    def _stop_sender(self, channel: ChannelInfo) -> None:
        task = channel.sender_task
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # ==================== 统计 ====================

    @property
    def connection_count(self) -> int:
        return len(self._channels)

    def get_stats(self) -> dict:
        """获取统计信息"""
        uptime = (now_utc() - self._stats["start_time"]).total_seconds()
        return {
            **self._stats,
            "start_time": self._stats["start_time"].isoformat(),
            "uptime_seconds": round(uptime, 2),
            "active_connections": len(self._channels),
            "online_users": len(self.get_connected_users()),
            "last_seq": self._seq,
            "queued_messages": sum(c.queue.qsize() for c in self._channels.values()),
            "health": "healthy" if self._started else "stopped",
        }
