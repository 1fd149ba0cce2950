from fastapi import Request

from roomrelay.services.registry import RoomRegistry


def get_registry(request: Request) -> RoomRegistry:
    return request.app.state.registry
