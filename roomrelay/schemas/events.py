"""
roomrelay.schemas.events
~~~~~~~~~~~~~~~~~~~~~~~~

WebSocket 协议模型：客户端加入请求与服务端推送事件。

服务端事件序列化为::

    {"type": "join" | "leave" | "message" | "error" | "update-rooms-list",
     "value"?: str, "username"?: str}

``value`` 为 ``None`` 时省略，``username`` 为空字符串时省略。
"""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

SERVER_USERNAME = "Server"


class EventType(str, Enum):
    """服务端事件类型。"""

    JOIN = "join"
    LEAVE = "leave"
    MESSAGE = "message"
    ERROR = "error"
    UPDATE_ROOMS_LIST = "update-rooms-list"


class JoinRequest(BaseModel):
    """连接建立后客户端发送的第一帧。多余字段忽略，缺字段或类型错误视为解析失败。"""

    model_config = ConfigDict(extra="ignore")

    username: str = Field(..., description="显示名称，仅在房间内去重")
    channel: str = Field(..., description="目标房间 ID")


class SocketMessage(BaseModel):
    """推送给客户端的单个事件。"""

    model_config = ConfigDict(frozen=True)

    type: EventType
    value: str | None = None
    username: str = ""

    def to_json(self) -> str:
        """序列化为线上格式（省略空字段）。"""
        return self.model_dump_json(exclude_defaults=True)

    # ── 快捷构造 ──────────────────────────────────────────────────────

    @classmethod
    def join(cls, username: str) -> SocketMessage:
        return cls(type=EventType.JOIN, username=username)

    @classmethod
    def leave(cls, username: str) -> SocketMessage:
        return cls(type=EventType.LEAVE, username=username)

    @classmethod
    def message(cls, value: str, username: str) -> SocketMessage:
        return cls(type=EventType.MESSAGE, value=value, username=username)

    @classmethod
    def error(cls, value: str) -> SocketMessage:
        return cls(type=EventType.ERROR, value=value)

    @classmethod
    def rooms_changed(cls) -> SocketMessage:
        return cls(type=EventType.UPDATE_ROOMS_LIST)
