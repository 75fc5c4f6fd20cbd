"""
实时通道测试

以内存中的假连接替换 websockets.connect，验证加入、事件分发与断线重连。
"""

import asyncio

import pytest

from taskweave.client.realtime import RealtimeChannel
from taskweave.client.reconnect import ConnectionState, ReconnectConfig
from taskweave.common.serialization import from_json, to_json
from taskweave.domain import events


class FakeServerSocket:
    """客户端视角的假连接：send 记录发出的消息，迭代返回服务端推送"""

    def __init__(self):
        self.sent: list[dict] = []
        self.closed = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, text: str):
        self.sent.append(from_json(text))

    async def close(self):
        self.closed = True
        self._incoming.put_nowait(None)

    def push(self, message: dict):
        self._incoming.put_nowait(to_json(message))

    def drop(self):
        self._incoming.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item


class FakeConnector:
    def __init__(self, failures: int = 0):
        self.sockets: list[FakeServerSocket] = []
        self.failures = failures

    async def __call__(self, url: str):
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionRefusedError("拒绝连接")
        ws = FakeServerSocket()
        self.sockets.append(ws)
        return ws


async def no_sleep(delay: float):
    return None


async def settle():
    for _ in range(10):
        await asyncio.sleep(0)


def make_channel(connector: FakeConnector, max_attempts: int = 5) -> RealtimeChannel:
    return RealtimeChannel(
        url="ws://testserver/ws",
        session_token="token-1",
        reconnect_config=ReconnectConfig(base_delay=1.0, max_attempts=max_attempts),
        connector=connector,
        sleep=no_sleep,
    )


class TestRealtimeChannel:
    """RealtimeChannel 测试"""

    @pytest.mark.asyncio
    async def test_connect_announces_session(self):
        connector = FakeConnector()
        channel = make_channel(connector)
        resyncs = []
        channel.on("connected", resyncs.append)

        assert await channel.connect() is True

        assert connector.sockets[0].sent[0] == {
            "type": "user_join",
            "payload": {"session_token": "token-1"},
        }
        assert resyncs == [False]
        await channel.close()

    @pytest.mark.asyncio
    async def test_events_dispatched(self):
        connector = FakeConnector()
        channel = make_channel(connector)
        received = []
        errors = []
        channel.on("event", received.append)
        channel.on("error", errors.append)
        await channel.connect()

        ws = connector.sockets[0]
        ws.push({"type": "connected", "payload": {"connection_id": "ws_1"}, "seq": 0})
        ws.push(events.task_deleted("t1").model_copy(update={"seq": 1}).to_message())
        ws.push({"type": "error", "payload": {"error": "AUTHENTICATION_ERROR", "message": "无效"}})
        await settle()

        assert channel.connection_id == "ws_1"
        assert [e.type for e in received] == ["task_deleted"]
        assert received[0].seq == 1
        assert errors[0]["error"] == "AUTHENTICATION_ERROR"
        await channel.close()

    @pytest.mark.asyncio
    async def test_drop_reconnects_and_requests_resync(self):
        connector = FakeConnector()
        channel = make_channel(connector)
        resyncs = []
        channel.on("connected", resyncs.append)
        await channel.connect()

        connector.sockets[0].drop()
        await settle()
        await channel.reconnect.wait_reconnect()

        assert len(connector.sockets) == 2
        assert channel.state == ConnectionState.CONNECTED
        assert resyncs == [False, True]
        assert connector.sockets[1].sent[0]["type"] == "user_join"
        await channel.close()

    @pytest.mark.asyncio
    async def test_exhausted_retries_end_in_error(self):
        connector = FakeConnector()
        channel = make_channel(connector, max_attempts=2)
        await channel.connect()

        connector.failures = 2
        connector.sockets[0].drop()
        await settle()
        await channel.reconnect.wait_reconnect()

        assert channel.state == ConnectionState.ERROR
        assert await channel.connect() is True
        assert channel.state == ConnectionState.CONNECTED
        await channel.close()

    @pytest.mark.asyncio
    async def test_close_does_not_reconnect(self):
        connector = FakeConnector()
        channel = make_channel(connector)
        await channel.connect()

        await channel.close()
        await settle()

        assert len(connector.sockets) == 1
        assert connector.sockets[0].closed
        assert channel.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_send_without_connection(self):
        channel = make_channel(FakeConnector())
        assert await channel.ping() is False
