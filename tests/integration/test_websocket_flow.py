"""
实时推送集成测试

两个查看者通过 /ws 连接，验证加入、广播与离开。
"""

import pytest
from fastapi.testclient import TestClient

from taskweave.client.task_cache import TaskCache
from taskweave.web_api import create_app


@pytest.fixture
def client():
    with TestClient(create_app()) as test_client:
        yield test_client


def register(client: TestClient, username: str) -> tuple[dict, str]:
    resp = client.post(
        "/api/users/register",
        json={"username": username, "email": f"{username}@example.com"},
    )
    data = resp.json()["data"]
    return data["user"], data["session_token"]


def receive_until(ws, message_type: str, limit: int = 20) -> dict:
    for _ in range(limit):
        message = ws.receive_json()
        if message["type"] == message_type:
            return message
    raise AssertionError(f"未收到 {message_type}")


def join(ws, token: str) -> None:
    ws.send_json({"type": "user_join", "payload": {"session_token": token}})


class TestRealtime:
    """WebSocket 广播测试"""

    def test_connected_message(self, client):
        with client.websocket_connect("/ws") as ws:
            message = ws.receive_json()
            assert message["type"] == "connected"
            assert message["payload"]["connection_id"]

    def test_two_viewers_converge_on_created_task(self, client):
        """查看者 1 创建任务后，两个查看者的镜像条目一致"""
        alice, alice_token = register(client, "alice")
        _, bob_token = register(client, "bobby")

        with client.websocket_connect("/ws") as ws1, client.websocket_connect("/ws") as ws2:
            receive_until(ws1, "connected")
            receive_until(ws2, "connected")
            join(ws1, alice_token)
            receive_until(ws1, "user_joined")
            join(ws2, bob_token)
            receive_until(ws2, "user_joined")

            resp = client.post(
                "/api/tasks",
                json={"title": "X", "assigned_user_id": alice["id"]},
                headers={"Authorization": f"Bearer {alice_token}"},
            )
            created = resp.json()["data"]

            event1 = receive_until(ws1, "task_created")
            event2 = receive_until(ws2, "task_created")

        assert event1 == event2
        assert event1["seq"] > 0

        cache1, cache2 = TaskCache(), TaskCache()
        cache1.apply_event(event1)
        cache2.apply_event(event2)
        assert cache1.get(created["id"]) == cache2.get(created["id"])
        assert cache1.get(created["id"]).title == "X"

    def test_updates_delivered_in_commit_order(self, client):
        _, token = register(client, "alice")
        headers = {"Authorization": f"Bearer {token}"}

        with client.websocket_connect("/ws") as ws:
            receive_until(ws, "connected")
            task = client.post("/api/tasks", json={"title": "v1"}, headers=headers).json()["data"]
            for i in range(2, 5):
                client.put(f"/api/tasks/{task['id']}", json={"title": f"v{i}"}, headers=headers)

            receive_until(ws, "task_created")
            versions = [receive_until(ws, "task_updated")["payload"]["task"]["version"] for _ in range(3)]

        assert versions == [2, 3, 4]

    def test_invalid_token_gets_error(self, client):
        with client.websocket_connect("/ws") as ws:
            receive_until(ws, "connected")
            join(ws, "bogus")
            error = receive_until(ws, "error")
            assert error["payload"]["error"] == "AUTHENTICATION_ERROR"

    def test_invalid_json_gets_error(self, client):
        with client.websocket_connect("/ws") as ws:
            receive_until(ws, "connected")
            ws.send_text("not json")
            error = receive_until(ws, "error")
            assert error["payload"]["error"] == "VALIDATION_ERROR"

    def test_ping_pong(self, client):
        with client.websocket_connect("/ws") as ws:
            receive_until(ws, "connected")
            ws.send_json({"type": "ping"})
            assert receive_until(ws, "pong")["seq"] == 0

    def test_disconnect_broadcasts_user_left(self, client):
        _, alice_token = register(client, "alice")
        bob, bob_token = register(client, "bobby")

        with client.websocket_connect("/ws") as watcher:
            receive_until(watcher, "connected")
            join(watcher, alice_token)
            receive_until(watcher, "user_joined")

            with client.websocket_connect("/ws") as leaver:
                receive_until(leaver, "connected")
                join(leaver, bob_token)
                joined = receive_until(watcher, "user_joined")
                assert joined["payload"]["user"]["id"] == bob["id"]

            left = receive_until(watcher, "user_left")
            assert left["payload"]["user"]["id"] == bob["id"]
