"""
实时通道重连管理

连接状态机：disconnected -> connecting -> connected；
断线后进入 reconnecting，第 n 次尝试前等待 base_delay * 2^(n-1)，
连续失败 max_attempts 次后进入 error，需要显式 connect() 才会再次尝试。
每次进入 connected 都会回调 on_connected(resync)，断线之后的连接 resync 为 True。
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from loguru import logger

from taskweave.common.config import settings
from taskweave.common.time import now_utc


class ConnectionState(str, Enum):
    """连接状态"""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    ERROR = "error"


@dataclass
class ReconnectConfig:
    """重连配置"""

    base_delay: float = 1.0          # 首次重连等待（秒）
    max_attempts: int = 5            # 最大重试次数
    jitter_factor: float = 0.0       # 抖动因子（0-1）
    max_delay: float | None = None   # 退避上限，None 表示不设上限

    @classmethod
    def from_settings(cls) -> ReconnectConfig:
        return cls(
            base_delay=settings.RECONNECT_BASE_DELAY,
            max_attempts=settings.RECONNECT_MAX_ATTEMPTS,
            jitter_factor=settings.RECONNECT_JITTER,
        )


@dataclass
class ReconnectStats:
    """重连统计"""

    total_reconnects: int = 0
    successful_reconnects: int = 0
    failed_attempts: int = 0
    current_attempt: int = 0
    delays: list[float] = field(default_factory=list)
    last_success_time: datetime | None = None
    last_failure_time: datetime | None = None
    last_failure_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """转换为字典"""
        return {
            "total_reconnects": self.total_reconnects,
            "successful_reconnects": self.successful_reconnects,
            "failed_attempts": self.failed_attempts,
            "current_attempt": self.current_attempt,
            "delays": list(self.delays),
            "last_success_time": (
                self.last_success_time.isoformat() if self.last_success_time else None
            ),
            "last_failure_time": (
                self.last_failure_time.isoformat() if self.last_failure_time else None
            ),
            "last_failure_reason": self.last_failure_reason,
        }


class ReconnectionManager:
    """
    重连管理器

    connect_func 建立一次连接，失败时抛出异常；
    on_connected(resync) 在每次连接成功后调用，可为协程。
    """

    def __init__(
        self,
        connect_func: Callable[[], Awaitable[Any]],
        on_connected: Callable[[bool], Any] | None = None,
        config: ReconnectConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._config = config or ReconnectConfig.from_settings()
        self._connect_func = connect_func
        self._on_connected = on_connected
        self._sleep = sleep

        self._state = ConnectionState.DISCONNECTED
        self._stats = ReconnectStats()
        self._needs_resync = False
        self._stopped = False
        self._reconnect_task: asyncio.Task | None = None
        self._state_listeners: list[Callable[[ConnectionState, ConnectionState], Any]] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def attempts(self) -> int:
        return self._stats.current_attempt

    def get_stats(self) -> ReconnectStats:
        return self._stats

    def on_state_change(self, callback: Callable[[ConnectionState, ConnectionState], Any]) -> None:
        """注册状态变化回调 callback(old, new)"""
        self._state_listeners.append(callback)

    def compute_delay(self, attempt: int) -> float:
        """第 attempt 次尝试前的等待时间"""
        delay = self._config.base_delay * (2 ** (attempt - 1))
        if self._config.jitter_factor > 0:
            jitter = delay * self._config.jitter_factor
            delay += random.uniform(-jitter, jitter)
        if self._config.max_delay is not None:
            delay = min(delay, self._config.max_delay)
        return max(delay, 0.0)

    async def connect(self) -> bool:
        """显式连接

        可从 disconnected 或 error 状态发起。初次连接失败会进入自动重连；
        从 error 发起的连接失败后保持 error。
        """
        if self._state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            return self._state == ConnectionState.CONNECTED

        from_error = self._state == ConnectionState.ERROR
        self._stopped = False
        await self._cancel_reconnect()
        self._set_state(ConnectionState.CONNECTING)

        try:
            await self._connect_func()
        except Exception as e:
            self._record_failure(e)
            if from_error:
                logger.error(f"连接失败，仍处于 error 状态: {e}")
                self._set_state(ConnectionState.ERROR)
            else:
                logger.warning(f"初次连接失败，进入自动重连: {e}")
                self._start_reconnect()
            return False

        await self._set_connected()
        return True

    def notify_disconnected(self, reason: str = "") -> None:
        """通知连接已断开，触发自动重连"""
        if self._stopped or self._state not in (
            ConnectionState.CONNECTED,
            ConnectionState.CONNECTING,
        ):
            return

        self._needs_resync = True
        self._stats.last_failure_time = now_utc()
        self._stats.last_failure_reason = reason
        logger.warning(f"连接断开: {reason}")
        self._start_reconnect()

    async def wait_reconnect(self) -> None:
        """等待重连流程结束，包括回调期间再次断线而启动的新流程"""
        while True:
            task = self._reconnect_task
            if task is None or task.done() or task is asyncio.current_task():
                return
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def stop(self) -> None:
        """停止重连"""
        self._stopped = True
        await self._cancel_reconnect()
        self._set_state(ConnectionState.DISCONNECTED)

    # ==================== 私有方法 ====================

    def _start_reconnect(self) -> None:
        self._needs_resync = True
        self._stats.current_attempt = 0
        self._set_state(ConnectionState.RECONNECTING)
        if self._reconnect_task is None or self._reconnect_task.done():
            self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        """重连循环"""
        while not self._stopped:
            if self._stats.current_attempt >= self._config.max_attempts:
                logger.error(f"达到最大重试次数 ({self._config.max_attempts})，停止重连")
                self._set_state(ConnectionState.ERROR)
                return

            self._stats.current_attempt += 1
            self._stats.total_reconnects += 1
            delay = self.compute_delay(self._stats.current_attempt)
            self._stats.delays.append(delay)

            logger.info(f"等待 {delay:.2f} 秒后重连 (尝试 {self._stats.current_attempt})")
            await self._sleep(delay)
            if self._stopped:
                return

            try:
                await self._connect_func()
            except Exception as e:
                self._record_failure(e)
                logger.warning(f"重连失败 (尝试 {self._stats.current_attempt}): {e}")
                continue

            self._stats.successful_reconnects += 1
            # 回调期间可能再次断线，需要允许启动新的重连循环
            self._reconnect_task = None
            await self._set_connected()
            return

    async def _set_connected(self) -> None:
        resync = self._needs_resync
        self._needs_resync = False
        self._stats.current_attempt = 0
        self._stats.last_success_time = now_utc()
        self._set_state(ConnectionState.CONNECTED)
        logger.info(f"连接成功 (resync={resync})")

        if self._on_connected:
            try:
                result = self._on_connected(resync)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"连接成功回调异常: {e}")

    def _record_failure(self, exc: Exception) -> None:
        self._stats.failed_attempts += 1
        self._stats.last_failure_time = now_utc()
        self._stats.last_failure_reason = str(exc)

    def _set_state(self, new_state: ConnectionState) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state
        for callback in self._state_listeners:
            try:
                callback(old_state, new_state)
            except Exception as e:
                logger.error(f"状态变化回调异常: {e}")

    async def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._reconnect_task = None
