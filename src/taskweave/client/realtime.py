"""
实时通道客户端

连接服务端 /ws，加入会话后接收广播事件。
断线由 ReconnectionManager 负责退避重连，重连成功后以 resync=True 回调 "connected"。

回调事件：
- event: 广播的领域事件（Event）
- connected: 连接建立，参数为是否需要全量同步
- error: 服务端发来的错误消息载荷
- disconnect: 连接断开
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from typing import Any

import websockets
from loguru import logger

from taskweave.client.reconnect import ConnectionState, ReconnectConfig, ReconnectionManager
from taskweave.common.config import settings
from taskweave.common.exceptions import SerializationError
from taskweave.common.serialization import from_json, to_json
from taskweave.domain.enums import MessageType
from taskweave.domain.events import Event


async def _default_connector(url: str):
    return await websockets.connect(
        url,
        ping_interval=settings.WEBSOCKET_PING_INTERVAL,
        close_timeout=5,
    )


class RealtimeChannel:
    """WebSocket 实时通道"""

    CONNECT_TIMEOUT = 10

    def __init__(
        self,
        url: str | None = None,
        session_token: str | None = None,
        reconnect_config: ReconnectConfig | None = None,
        connector: Callable[[str], Awaitable[Any]] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.url = url or settings.ws_endpoint
        self.session_token = session_token
        self.connection_id: str | None = None

        self._connector = connector or _default_connector
        self._ws = None
        self._receive_task: asyncio.Task | None = None
        self._closing = False
        self._callbacks: dict[str, Callable] = {}
        self.reconnect = ReconnectionManager(
            connect_func=self._open,
            on_connected=self._handle_connected,
            config=reconnect_config,
            sleep=sleep,
        )

    @property
    def state(self) -> ConnectionState:
        return self.reconnect.state

    @property
    def is_connected(self) -> bool:
        return self.reconnect.is_connected

    def on(self, event: str, callback: Callable):
        self._callbacks[event] = callback

    async def _emit(self, event: str, data: Any = None):
        if event in self._callbacks:
            try:
                result = self._callbacks[event](data)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"回调异常 [{event}]: {e}")

    async def connect(self) -> bool:
        """建立连接；可在 error 状态下再次调用"""
        self._closing = False
        return await self.reconnect.connect()

    async def close(self):
        """主动关闭，不触发重连"""
        self._closing = True
        await self.reconnect.stop()
        await self._teardown()
        logger.info("实时通道已关闭")

    async def send(self, message: dict[str, Any]) -> bool:
        if self._ws is None:
            return False
        try:
            await self._ws.send(to_json(message))
            return True
        except websockets.ConnectionClosed:
            logger.debug("发送失败，连接已关闭")
            return False

    async def join(self, session_token: str | None = None) -> bool:
        """以会话身份加入"""
        if session_token is not None:
            self.session_token = session_token
        if not self.session_token:
            return False
        return await self.send(
            {"type": MessageType.USER_JOIN.value, "payload": {"session_token": self.session_token}}
        )

    async def leave(self) -> bool:
        return await self.send({"type": MessageType.USER_LEAVE.value, "payload": {}})

    async def ping(self) -> bool:
        return await self.send({"type": MessageType.PING.value, "payload": {}})

    # ==================== 私有方法 ====================

    async def _open(self):
        await self._teardown()
        self._ws = await asyncio.wait_for(self._connector(self.url), timeout=self.CONNECT_TIMEOUT)
        logger.info(f"实时通道已连接: {self.url}")
        self._receive_task = asyncio.create_task(self._receive_loop(self._ws))

    async def _handle_connected(self, resync: bool):
        await self.join()
        await self._emit("connected", resync)

    async def _teardown(self):
        task = self._receive_task
        self._receive_task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        ws = self._ws
        self._ws = None
        if ws is not None:
            with contextlib.suppress(Exception):
                await ws.close()

    async def _receive_loop(self, ws):
        reason = "连接关闭"
        try:
            async for message in ws:
                try:
                    data = from_json(message)
                    await self._handle_message(data)
                except SerializationError:
                    logger.warning("无效的 JSON 消息")
                except Exception as e:
                    logger.error(f"消息处理异常: {e}")
        except websockets.ConnectionClosed as e:
            reason = f"连接关闭: {e}"
        except Exception as e:
            reason = str(e)
            logger.error(f"接收异常: {e}")

        if ws is not self._ws or self._closing:
            return
        self._ws = None
        logger.debug(f"实时通道断开: {reason}")
        await self._emit("disconnect", reason)
        self.reconnect.notify_disconnected(reason)

    async def _handle_message(self, data: Any):
        if not isinstance(data, dict):
            logger.warning("忽略非对象消息")
            return

        msg_type = data.get("type")
        payload = data.get("payload") or {}
        if msg_type == MessageType.CONNECTED.value:
            self.connection_id = payload.get("connection_id")
        elif msg_type == MessageType.PONG.value:
            logger.debug("收到 pong")
        elif msg_type == MessageType.ERROR.value:
            logger.warning(f"服务端错误 [{payload.get('error')}]: {payload.get('message')}")
            await self._emit("error", payload)
        else:
            await self._emit("event", Event.model_validate(data))
