"""
roomrelay.api.ws
~~~~~~~~~~~~~~~~

WebSocket 聊天端点。

连接建立后客户端先发送加入请求 ``{"username": ..., "channel": ...}``，
之后的每一帧文本都成为房间的新内容并广播给房间内所有人。
二进制帧 ``0x9`` 为心跳，服务端回复 ``0xA``。
"""
from __future__ import annotations

from fastapi import APIRouter, WebSocket

from roomrelay.core.logging import get_logger
from roomrelay.services.registry import RoomRegistry
from roomrelay.services.session import ConnectionSession

logger = get_logger(__name__)

router: APIRouter = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """WebSocket 房间聊天端点。

    Args:
        websocket: FastAPI WebSocket 连接对象。
    """
    registry: RoomRegistry = websocket.app.state.registry
    await websocket.accept()
    session = ConnectionSession(websocket, registry)
    try:
        await session.run()
    except Exception as e:
        logger.error("WebSocket 异常: %s", e, exc_info=True)
