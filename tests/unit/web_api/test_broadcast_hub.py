"""
广播中心测试

使用内存中的假 WebSocket 验证连接生命周期、成员管理、
发布顺序以及慢订阅者的移除。
"""

import asyncio

import pytest

from taskweave.common.serialization import from_json
from taskweave.domain import events
from taskweave.domain.enums import EventType, MessageType
from taskweave.domain.schemas import UserCreateRequest
from taskweave.web_api.websockets import BroadcastHub


class FakeWebSocket:
    """记录发送内容的假 WebSocket"""

    def __init__(self, delay: float = 0.0, fail: bool = False, block: bool = False):
        self.delay = delay
        self.fail = fail
        self.block = block
        self.accepted = False
        self.close_code: int | None = None
        self.sent: list[dict] = []
        self._gate = asyncio.Event()

    async def accept(self):
        self.accepted = True

    async def send_text(self, text: str):
        if self.block:
            await self._gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("连接已断开")
        self.sent.append(from_json(text))

    async def close(self, code: int = 1000, reason: str = ""):
        self.close_code = code

    def types(self) -> list[str]:
        return [m["type"] for m in self.sent]


async def settle(seconds: float = 0.02):
    await asyncio.sleep(seconds)


@pytest.fixture
def hub(identity):
    return BroadcastHub(identity=identity, queue_size=10, send_timeout=0.05, max_connections=5)


class TestConnectionLifecycle:
    """连接生命周期测试"""

    @pytest.mark.asyncio
    async def test_connect_sends_connected_message(self, hub):
        ws = FakeWebSocket()
        connection_id = await hub.connect(ws)
        await settle()

        assert ws.accepted
        assert ws.sent[0]["type"] == MessageType.CONNECTED.value
        assert ws.sent[0]["payload"]["connection_id"] == connection_id
        assert ws.sent[0]["seq"] == 0
        assert hub.connection_count == 1
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_connection_limit(self, identity):
        hub = BroadcastHub(identity=identity, max_connections=1)
        await hub.connect(FakeWebSocket())

        rejected = FakeWebSocket()
        with pytest.raises(ConnectionRefusedError):
            await hub.connect(rejected)
        assert rejected.close_code == 1013
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_disconnect_unknown_is_noop(self, hub):
        await hub.disconnect("ws_missing")
        assert hub.connection_count == 0

    @pytest.mark.asyncio
    async def test_shutdown_closes_all(self, hub):
        sockets = [FakeWebSocket() for _ in range(3)]
        for ws in sockets:
            await hub.connect(ws)

        await hub.shutdown()

        assert hub.connection_count == 0
        assert all(ws.close_code == 1001 for ws in sockets)
        assert hub.get_stats()["health"] == "stopped"


class TestPublish:
    """发布测试"""

    @pytest.mark.asyncio
    async def test_publish_reaches_all_in_order(self, hub):
        first, second = FakeWebSocket(), FakeWebSocket()
        await hub.connect(first)
        await hub.connect(second)

        for i in range(5):
            hub.publish(events.task_deleted(f"t{i}"))
        await settle()

        for ws in (first, second):
            deleted = [m for m in ws.sent if m["type"] == EventType.TASK_DELETED.value]
            assert [m["payload"]["task_id"] for m in deleted] == [f"t{i}" for i in range(5)]
            assert [m["seq"] for m in deleted] == [1, 2, 3, 4, 5]
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_publish_returns_sequenced_event(self, hub):
        event = hub.publish(events.task_deleted("t1"))
        assert event.seq == 1
        assert hub.publish(events.task_deleted("t2")).seq == 2

    @pytest.mark.asyncio
    async def test_send_to_user_targets_joined_channels(self, hub, identity):
        user, token = await identity.register(UserCreateRequest(username="alice", email="a@example.com"))
        mine, other = FakeWebSocket(), FakeWebSocket()
        mine_id = await hub.connect(mine)
        await hub.connect(other)
        await hub.join(mine_id, token)

        count = hub.send_to_user(user.id, events.task_deleted("t1"))
        await settle()

        assert count == 1
        direct = [m for m in mine.sent if m["type"] == EventType.TASK_DELETED.value]
        assert direct[0]["seq"] == 0
        assert EventType.TASK_DELETED.value not in other.types()
        await hub.shutdown()


class TestMembership:
    """成员管理测试"""

    @pytest.mark.asyncio
    async def test_join_broadcasts_user_joined(self, hub, identity):
        user, token = await identity.register(UserCreateRequest(username="alice", email="a@example.com"))
        watcher, joiner = FakeWebSocket(), FakeWebSocket()
        await hub.connect(watcher)
        joiner_id = await hub.connect(joiner)

        joined = await hub.join(joiner_id, token)
        await settle()

        assert joined.id == user.id
        assert EventType.USER_JOINED.value in watcher.types()
        assert [u.id for u in hub.get_connected_users()] == [user.id]
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_invalid_token_errors_only_that_connection(self, hub):
        watcher, joiner = FakeWebSocket(), FakeWebSocket()
        await hub.connect(watcher)
        joiner_id = await hub.connect(joiner)

        assert await hub.join(joiner_id, "bogus") is None
        await settle()

        error = joiner.sent[-1]
        assert error["type"] == MessageType.ERROR.value
        assert error["payload"]["error"] == "AUTHENTICATION_ERROR"
        assert watcher.types() == [MessageType.CONNECTED.value]
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_rejoin_same_user_is_quiet(self, hub, identity):
        _, token = await identity.register(UserCreateRequest(username="alice", email="a@example.com"))
        ws = FakeWebSocket()
        connection_id = await hub.connect(ws)

        await hub.join(connection_id, token)
        await hub.join(connection_id, token)
        await settle()

        assert ws.types().count(EventType.USER_JOINED.value) == 1
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_leave_and_disconnect_broadcast_user_left(self, hub, identity):
        _, token = await identity.register(UserCreateRequest(username="alice", email="a@example.com"))
        watcher = FakeWebSocket()
        await hub.connect(watcher)

        first_id = await hub.connect(FakeWebSocket())
        await hub.join(first_id, token)
        await hub.leave(first_id)

        second_id = await hub.connect(FakeWebSocket())
        await hub.join(second_id, token)
        await hub.disconnect(second_id)
        await settle()

        assert watcher.types().count(EventType.USER_LEFT.value) == 2
        assert hub.get_connected_users() == []
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_leave_without_join(self, hub):
        connection_id = await hub.connect(FakeWebSocket())
        assert await hub.leave(connection_id) is None
        await hub.shutdown()


class TestClientMessages:
    """客户端消息处理测试"""

    @pytest.mark.asyncio
    async def test_ping_pong(self, hub):
        ws = FakeWebSocket()
        connection_id = await hub.connect(ws)

        await hub.handle_client_message(connection_id, {"type": "ping"})
        await settle()

        assert ws.types()[-1] == MessageType.PONG.value
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_join_via_message(self, hub, identity):
        _, token = await identity.register(UserCreateRequest(username="alice", email="a@example.com"))
        ws = FakeWebSocket()
        connection_id = await hub.connect(ws)

        await hub.handle_client_message(
            connection_id, {"type": "user_join", "payload": {"session_token": token}}
        )
        await settle()

        assert EventType.USER_JOINED.value in ws.types()
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_unknown_message_type(self, hub):
        ws = FakeWebSocket()
        connection_id = await hub.connect(ws)

        await hub.handle_client_message(connection_id, {"type": "shout"})
        await settle()

        assert ws.sent[-1]["payload"]["error"] == "VALIDATION_ERROR"
        await hub.shutdown()


class TestSlowSubscribers:
    """慢订阅者测试"""

    @pytest.mark.asyncio
    async def test_send_timeout_drops_subscriber(self, hub):
        fast, slow = FakeWebSocket(), FakeWebSocket(delay=1.0)
        await hub.connect(fast)
        await hub.connect(slow)

        hub.publish(events.task_deleted("t1"))
        await settle(0.2)

        assert hub.connection_count == 1
        assert slow.close_code == 1011
        assert EventType.TASK_DELETED.value in fast.types()
        assert hub.get_stats()["dropped_subscribers"] == 1
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_send_error_drops_subscriber(self, hub):
        await hub.connect(FakeWebSocket(fail=True))
        await settle()

        assert hub.connection_count == 0

    @pytest.mark.asyncio
    async def test_full_queue_drops_subscriber(self, identity):
        hub = BroadcastHub(identity=identity, queue_size=2, send_timeout=10)
        stuck, healthy = FakeWebSocket(block=True), FakeWebSocket()
        await hub.connect(stuck)
        await hub.connect(healthy)
        await settle()

        for i in range(3):
            hub.publish(events.task_deleted(f"t{i}"))
        await settle()

        assert hub.connection_count == 1
        deleted = [m for m in healthy.sent if m["type"] == EventType.TASK_DELETED.value]
        assert len(deleted) == 3
        await hub.shutdown()

    @pytest.mark.asyncio
    async def test_dropped_member_triggers_user_left(self, hub, identity):
        _, token = await identity.register(UserCreateRequest(username="alice", email="a@example.com"))
        watcher = FakeWebSocket()
        await hub.connect(watcher)
        slow_id = await hub.connect(FakeWebSocket(delay=1.0))
        await hub.join(slow_id, token)

        await settle(0.2)

        assert EventType.USER_LEFT.value in watcher.types()
        await hub.shutdown()
