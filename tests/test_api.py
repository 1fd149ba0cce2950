"""
tests.test_api
~~~~~~~~~~~~~~

HTTP 与 WebSocket 端点集成测试（FastAPI TestClient，不依赖 MongoDB）。
"""
from __future__ import annotations

import time
from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from roomrelay.main import app


@pytest.fixture()
def client() -> Iterator[TestClient]:
    # 进入上下文才会触发 lifespan，每个测试拿到全新的注册表
    with TestClient(app) as c:
        yield c


class TestRoomsEndpoints:
    """测试 /api/rooms。"""

    def test_list_rooms_has_default_room(self, client: TestClient) -> None:
        resp = client.get("/api/rooms")

        assert resp.status_code == 200
        assert resp.json() == [{"id": "general", "users": []}]

    def test_remove_default_room_is_forbidden(self, client: TestClient) -> None:
        resp = client.delete("/api/rooms/general")

        assert resp.status_code == 400
        assert resp.json() == {"error": "Cannot remove the default room."}

    def test_remove_missing_room_is_idempotent(self, client: TestClient) -> None:
        for _ in range(2):
            resp = client.delete("/api/rooms/nowhere")
            assert resp.status_code == 200
            assert resp.json() == {"type": "success", "value": "Room already removed."}

    def test_remove_existing_room(self, client: TestClient) -> None:
        client.portal.call(client.app.state.registry.get_or_create, "lobby")
        ids = {room["id"] for room in client.get("/api/rooms").json()}
        assert ids == {"general", "lobby"}

        resp = client.delete("/api/rooms/lobby")

        assert resp.status_code == 200
        assert resp.json() == {"type": "success", "value": "Room removed."}
        assert [room["id"] for room in client.get("/api/rooms").json()] == ["general"]

    def test_remove_busy_room_conflicts(self, client: TestClient) -> None:
        registry = client.app.state.registry
        client.portal.call(registry.join, "lobby", "alice")
        client.portal.call(registry.join, "lobby", "bob")

        resp = client.delete("/api/rooms/lobby")

        assert resp.status_code == 400
        assert resp.json() == {"error": "Room has more than 1 user."}


class TestSocketEndpoint:
    """测试 /ws。"""

    def test_join_and_echo(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"username": "carol", "channel": "general"})

            assert ws.receive_json() == {"type": "message", "value": "", "username": "Server"}
            assert ws.receive_json() == {"type": "join", "username": "carol"}

            ws.send_text("hi all")
            assert ws.receive_json() == {
                "type": "message", "value": "hi all", "username": "carol",
            }

            rooms = client.get("/api/rooms").json()
            assert rooms == [{"id": "general", "users": ["carol"]}]

    def test_ping_gets_pong(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.send_bytes(b"\x09")

            assert ws.receive_bytes() == b"\x0a"

    def test_malformed_join_closes_connection(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.send_text("not json")

            assert ws.receive_json() == {"type": "error", "value": "Invalid JSON"}
            with pytest.raises(WebSocketDisconnect):
                ws.receive_text()

    def test_disconnect_removes_membership(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"username": "dave", "channel": "lobby"})
            ws.receive_json()
            ws.receive_json()

        # 会话清理在服务端任务里异步完成，轮询等待
        for _ in range(100):
            users = {room["id"]: room["users"] for room in client.get("/api/rooms").json()}
            if users["lobby"] == []:
                break
            time.sleep(0.01)
        assert users["lobby"] == []


class TestHealth:
    def test_health(self, client: TestClient) -> None:
        resp = client.get("/health")

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["environment"] == "test"
        assert body["storage"] is False
        assert body["rooms"] == 1
