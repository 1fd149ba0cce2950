"""
roomrelay.api.rooms
~~~~~~~~~~~~~~~~~~~

房间 REST 接口：房间列表与删除。

路由前缀 ``/api/rooms``。

端点:
  - ``GET    /rooms``              → 获取所有房间及其成员
  - ``DELETE /rooms/{room_id}``    → 删除房间（默认房间 / 最后一个房间 / 多人房间不可删）
"""
from fastapi import APIRouter, Depends, Request

from roomrelay.api.deps import get_registry
from roomrelay.core.rate_limit import limiter
from roomrelay.schemas.rooms import ErrorResponse, RemoveRoomResponse, RoomData
from roomrelay.services.registry import RoomRegistry

router: APIRouter = APIRouter()


@router.get("/rooms", summary="获取房间列表", response_model=list[RoomData])
@limiter.limit("10/second")
async def list_rooms(
    request: Request,
    registry: RoomRegistry = Depends(get_registry),
) -> list[RoomData]:
    """返回所有房间及当前成员（无顺序保证）。"""
    return await registry.list_rooms()


@router.delete(
    "/rooms/{room_id}",
    summary="删除房间",
    response_model=RemoveRoomResponse,
    responses={400: {"model": ErrorResponse}},
)
@limiter.limit("5/second")
async def remove_room(
    request: Request,
    room_id: str,
    registry: RoomRegistry = Depends(get_registry),
) -> RemoveRoomResponse:
    """删除指定房间，成功后通知其余房间刷新列表。

    房间不存在时同样返回成功；违反删除规则时由 ``RoomError`` 处理器返回 400。

    Args:
        request: FastAPI Request 对象（用于限流判断）。
        room_id: 房间唯一标识。
    """
    removed = await registry.remove(room_id)
    return RemoveRoomResponse(value="Room removed." if removed else "Room already removed.")
