"""
roomrelay.services.session
~~~~~~~~~~~~~~~~~~~~~~~~~~

单个 WebSocket 连接的会话状态机::

    CONNECTING → JOINED → RELAYING → CLOSED

- CONNECTING：等待第一帧文本并解析为加入请求 ``{"username", "channel"}``；
  期间收到的二进制帧只当作心跳处理。
- JOINED：登记成员、订阅广播，通知其他房间刷新列表，
  以 ``Server`` 身份把房间当前内容发给新连接，再向房间广播 ``join``。
- RELAYING：上行（连接 → 房间）与下行（房间 → 连接）两个协程并发运行，
  任意一方先结束即取消另一方。
- CLOSED：广播 ``leave``、移除成员、释放订阅，且只执行一次。
"""
from __future__ import annotations

import asyncio
import contextlib
from enum import Enum
from pydantic import ValidationError
from starlette.websockets import WebSocket, WebSocketDisconnect

from roomrelay.core.logging import get_logger
from roomrelay.schemas.events import SERVER_USERNAME, JoinRequest, SocketMessage
from roomrelay.services.registry import JoinTicket, RoomRegistry

logger = get_logger(__name__)

PING_FRAME = b"\x09"
PONG_FRAME = b"\x0a"


class SessionState(str, Enum):
    CONNECTING = "connecting"
    JOINED = "joined"
    RELAYING = "relaying"
    CLOSED = "closed"


class ConnectionSession:
    """一条连接从加入握手到断开的完整生命周期。

    调用方负责 ``accept()`` WebSocket，之后调用 ``run()`` 直到会话结束。

    Attributes:
        state: 当前状态。
        username: 加入后的显示名称。
        room_id: 加入后的房间 ID。
    """

    def __init__(self, websocket: WebSocket, registry: RoomRegistry) -> None:
        self.websocket = websocket
        self.registry = registry
        self.state = SessionState.CONNECTING
        self.username: str = ""
        self.room_id: str = ""
        self._ticket: JoinTicket | None = None
        self._send_lock = asyncio.Lock()
        self._release_task: asyncio.Task[None] | None = None

    async def run(self) -> None:
        """运行整个会话。连接断开或出错都会正常返回，不向外抛异常。"""
        try:
            request = await self._handshake()
            if request is None:
                return
            if not await self._join(request):
                return
            await self._relay()
        finally:
            await self._teardown()

    # ── 发送 ──────────────────────────────────────────────────────────

    async def _send_event(self, event: SocketMessage) -> bool:
        return await self._write(text=event.to_json())

    async def _write(self, *, text: str | None = None, data: bytes | None = None) -> bool:
        """串行化所有写操作。连接已断开时返回 False。"""
        async with self._send_lock:
            try:
                if data is not None:
                    await self.websocket.send_bytes(data)
                else:
                    await self.websocket.send_text(text or "")
            except (WebSocketDisconnect, RuntimeError, OSError):
                return False
        return True

    async def _pong(self, data: bytes) -> None:
        if data[:1] == PING_FRAME:
            await self._write(data=PONG_FRAME)

    async def _close(self) -> None:
        with contextlib.suppress(WebSocketDisconnect, RuntimeError, OSError):
            await self.websocket.close()

    # ── CONNECTING ────────────────────────────────────────────────────

    async def _handshake(self) -> JoinRequest | None:
        while True:
            try:
                message = await self.websocket.receive()
            except (WebSocketDisconnect, RuntimeError):
                return None
            if message["type"] == "websocket.disconnect":
                logger.debug("连接在加入前断开")
                return None
            data = message.get("bytes")
            if data is not None:
                await self._pong(data)
                continue
            text = message.get("text")
            if text is None:
                continue
            try:
                return JoinRequest.model_validate_json(text)
            except ValidationError as e:
                logger.info("加入请求格式错误: %r | %s", text[:200], e.errors()[:1])
                await self._send_event(SocketMessage.error("Invalid JSON"))
                await self._close()
                return None

    # ── JOINED ────────────────────────────────────────────────────────

    async def _join(self, request: JoinRequest) -> bool:
        if not request.username:
            logger.info("加入房间失败：用户名为空 | room=%s", request.channel)
            await self._send_event(SocketMessage.error("Failed to connect to room!"))
            await self._close()
            return False

        self._ticket = await self.registry.join(request.channel, request.username)
        self.username = request.username
        self.room_id = request.channel
        self.state = SessionState.JOINED
        logger.info(
            "用户加入房间 | room=%s | user=%s | 在线: %d",
            self.room_id, self.username, self._ticket.room.online_count,
        )

        await self.registry.broadcast_rooms_changed(exclude=self.room_id)
        await self._send_event(
            SocketMessage.message(self._ticket.content, SERVER_USERNAME),
        )
        # 新连接的订阅已在 join 中登记，因此自己也会收到这条 join 事件
        self._ticket.room.publish(SocketMessage.join(self.username))
        return True

    # ── RELAYING ──────────────────────────────────────────────────────

    async def _relay(self) -> None:
        self.state = SessionState.RELAYING
        inbound = asyncio.create_task(self._inbound_loop(), name=f"inbound:{self.username}")
        outbound = asyncio.create_task(self._outbound_loop(), name=f"outbound:{self.username}")
        try:
            await asyncio.wait(
                {inbound, outbound}, return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (inbound, outbound):
                task.cancel()
            results = await asyncio.gather(inbound, outbound, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error("会话转发异常 | room=%s | user=%s", self.room_id, self.username,
                             exc_info=result)

    async def _inbound_loop(self) -> None:
        """连接 → 房间：每条文本成为房间新内容并广播。"""
        assert self._ticket is not None
        room = self._ticket.room
        while True:
            try:
                message = await self.websocket.receive()
            except (WebSocketDisconnect, RuntimeError):
                return
            if message["type"] == "websocket.disconnect":
                return
            data = message.get("bytes")
            if data is not None:
                await self._pong(data)
                continue
            text = message.get("text")
            if text is None:
                continue
            logger.debug("%s: %s", self.username, text[:200])
            room.set_content(text)
            room.publish(SocketMessage.message(text, self.username))

    async def _outbound_loop(self) -> None:
        """房间 → 连接：把订阅到的事件逐条写回客户端，写失败即结束。"""
        assert self._ticket is not None
        async for event in self._ticket.subscription:
            if not await self._send_event(event):
                return

    # ── CLOSED ────────────────────────────────────────────────────────

    async def _teardown(self) -> None:
        previous, self.state = self.state, SessionState.CLOSED
        ticket, self._ticket = self._ticket, None
        if previous is SessionState.CLOSED or ticket is None:
            return
        # 释放在独立任务中完成，会话任务此时被取消也不会中断它
        self._release_task = asyncio.create_task(
            self._release(ticket), name=f"release:{self.username}",
        )
        try:
            await asyncio.shield(self._release_task)
        finally:
            await self._close()

    async def _release(self, ticket: JoinTicket) -> None:
        ticket.room.publish(SocketMessage.leave(self.username))
        ticket.subscription.close()
        await self.registry.leave(self.room_id, self.username)
        await self.registry.broadcast_rooms_changed(exclude=self.room_id)
        if ticket.subscription.dropped:
            logger.info(
                "慢消费者丢弃事件 | room=%s | user=%s | dropped=%d",
                self.room_id, self.username, ticket.subscription.dropped,
            )
        logger.info("用户离开房间 | room=%s | user=%s", self.room_id, self.username)
