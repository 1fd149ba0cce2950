"""
roomrelay.schemas.rooms
~~~~~~~~~~~~~~~~~~~~~~~

房间相关的 REST 请求/响应模型。
"""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class RoomData(BaseModel):
    """房间摘要信息。"""

    id: str = Field(..., description="房间唯一标识")
    users: list[str] = Field(default_factory=list, description="当前房间内的显示名称")


class RemoveRoomResponse(BaseModel):
    """删除房间成功（或房间早已不存在）时的响应体。"""

    type: Literal["success"] = "success"
    value: str = Field(..., description="人类可读的结果说明")


class ErrorResponse(BaseModel):
    """房间操作失败时的响应体。"""

    error: str = Field(..., description="错误信息")
