"""
roomrelay.schemas
~~~~~~~~~~~~~~~~~
Pydantic schemas and models for the API and the WebSocket protocol.
"""
from roomrelay.schemas.events import (
    SERVER_USERNAME,
    EventType,
    JoinRequest,
    SocketMessage,
)
from roomrelay.schemas.rooms import ErrorResponse, RemoveRoomResponse, RoomData

__all__ = [
    "SERVER_USERNAME",
    "ErrorResponse",
    "EventType",
    "JoinRequest",
    "RemoveRoomResponse",
    "RoomData",
    "SocketMessage",
]
