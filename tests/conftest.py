"""
tests.conftest
~~~~~~~~~~~~~~

共享 pytest fixtures。内存版 WebSocket 和 mock 仓库让测试
无需 MongoDB 与真实网络连接。
"""
from __future__ import annotations

import asyncio
import json
import os
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from starlette.websockets import WebSocketDisconnect

# ── 在所有测试导入前设置环境变量 ─────────────────────────────────────
os.environ.setdefault("ENVIRONMENT", "test")  # 激活 .env.test 配置
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.pop("MONGO_URI", None)

from roomrelay.services.registry import RoomRegistry  # noqa: E402


class FakeWebSocket:
    """模拟已 ``accept()`` 的 Starlette WebSocket。

    测试代码通过 ``push_text`` / ``push_bytes`` / ``disconnect`` 扮演客户端，
    通过 ``next_event`` / ``next_frame`` 读取服务端写出的帧。
    """

    def __init__(self) -> None:
        self._inbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._outbox: asyncio.Queue[str | bytes] = asyncio.Queue()
        self.closed = False
        self.client_gone = False

    # ── 客户端侧 ──────────────────────────────────────────────────────

    def push_text(self, text: str) -> None:
        self._inbox.put_nowait({"type": "websocket.receive", "text": text})

    def push_join(self, username: str, channel: str) -> None:
        self.push_text(json.dumps({"username": username, "channel": channel}))

    def push_bytes(self, data: bytes) -> None:
        self._inbox.put_nowait({"type": "websocket.receive", "bytes": data})

    def disconnect(self) -> None:
        self.client_gone = True
        self._inbox.put_nowait({"type": "websocket.disconnect", "code": 1000})

    async def next_frame(self, timeout: float = 1.0) -> str | bytes:
        return await asyncio.wait_for(self._outbox.get(), timeout)

    async def next_event(self, timeout: float = 1.0) -> dict[str, Any]:
        frame = await self.next_frame(timeout)
        assert isinstance(frame, str), f"expected text frame, got {frame!r}"
        return json.loads(frame)

    def drain(self) -> list[str | bytes]:
        frames: list[str | bytes] = []
        while not self._outbox.empty():
            frames.append(self._outbox.get_nowait())
        return frames

    # ── 服务端侧（Starlette WebSocket 接口子集）────────────────────────

    async def receive(self) -> dict[str, Any]:
        return await self._inbox.get()

    async def send_text(self, data: str) -> None:
        if self.client_gone or self.closed:
            raise WebSocketDisconnect(code=1006)
        self._outbox.put_nowait(data)

    async def send_bytes(self, data: bytes) -> None:
        if self.client_gone or self.closed:
            raise WebSocketDisconnect(code=1006)
        self._outbox.put_nowait(data)

    async def close(self, code: int = 1000) -> None:
        if self.closed:
            raise RuntimeError("Cannot call close once a close message has been sent.")
        self.closed = True


class SlowStore:
    """内存版房间仓库。写入一旦发出便无法取消（与 motor 在线程池里执行写操作一致），
    直到测试调用 ``release.set()`` 才真正落地。"""

    def __init__(self) -> None:
        self.rows: dict[str, str] = {}
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self._pending: set[asyncio.Future[None]] = set()

    async def upsert_content(self, room_id: str, content: str) -> None:
        self.started.set()
        commit = asyncio.ensure_future(self._commit(room_id, content))
        self._pending.add(commit)
        await asyncio.shield(commit)

    async def _commit(self, room_id: str, content: str) -> None:
        await self.release.wait()
        self.rows[room_id] = content

    async def ensure_room(self, room_id: str) -> None:
        self.rows.setdefault(room_id, "")

    async def delete_room(self, room_id: str) -> bool:
        return self.rows.pop(room_id, None) is not None

    async def load_all(self) -> list[dict[str, str]]:
        return [{"room_id": k, "content": v} for k, v in self.rows.items()]


@pytest.fixture()
def fake_ws() -> FakeWebSocket:
    return FakeWebSocket()


@pytest.fixture()
def ws_factory() -> type[FakeWebSocket]:
    """需要多个客户端时使用：每次调用返回一个新的 FakeWebSocket。"""
    return FakeWebSocket


@pytest.fixture()
def registry() -> RoomRegistry:
    """不带存储的独立注册表，每个测试一个。"""
    return RoomRegistry()


@pytest.fixture()
def mock_repo() -> MagicMock:
    """返回一个 mock 的 ``RoomRepository``，所有方法均为 AsyncMock。"""
    repo = MagicMock()
    repo.upsert_content = AsyncMock()
    repo.ensure_room = AsyncMock()
    repo.delete_room = AsyncMock(return_value=True)
    repo.load_all = AsyncMock(return_value=[])
    return repo


@pytest.fixture()
def slow_store() -> SlowStore:
    return SlowStore()
