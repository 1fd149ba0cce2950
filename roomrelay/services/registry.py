"""
roomrelay.services.registry
~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间注册表：管理所有房间的生命周期。

- ``get_or_create(room_id)``          → 获取/创建房间（配置存储时同时启动落库任务）
- ``join(room_id, username)``         → 原子地加入房间：登记成员 + 读取内容 + 订阅广播
- ``leave(room_id, username)``        → 离开房间（房间已被删除时只记录日志）
- ``list_rooms()``                    → 所有房间及其成员的快照
- ``remove(room_id)``                 → 按规则删除房间并通知其余房间
- ``broadcast_rooms_changed()``       → 向其他房间推送 ``update-rooms-list``

锁顺序固定为“注册表锁 → 房间成员锁”，两把锁都只保护 O(1) 操作，
从不跨越 I/O 持有。注册表不是全局单例，由调用方创建并共享。
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass

from roomrelay.core.exceptions import RoomConflictError, RoomForbiddenError
from roomrelay.core.logging import get_logger
from roomrelay.db.room_repository import RoomRepository
from roomrelay.schemas.events import SocketMessage
from roomrelay.schemas.rooms import RoomData
from roomrelay.services.broadcast import Subscription
from roomrelay.services.persister import ContentPersister
from roomrelay.services.room import Room

logger = get_logger(__name__)

DEFAULT_ROOM = "general"


@dataclass
class JoinTicket:
    """``join`` 的结果：房间句柄、加入时的内容快照与广播订阅。"""

    room: Room
    content: str
    subscription: Subscription


class RoomRegistry:
    """房间注册表。

    Attributes:
        repo: 可选的房间内容仓库（为 None 时只保存在内存中）。
        default_room: 默认房间 ID，始终存在且不可删除。
        persist_interval: 落库去抖间隔（秒）。
        broadcast_capacity: 每个订阅者的事件缓冲区容量。
    """

    def __init__(
        self,
        repo: RoomRepository | None = None,
        *,
        default_room: str = DEFAULT_ROOM,
        persist_interval: float = 2.0,
        broadcast_capacity: int = 100,
    ) -> None:
        self.repo = repo
        self.default_room = default_room
        self.persist_interval = persist_interval
        self.broadcast_capacity = broadcast_capacity
        self._lock = asyncio.Lock()
        self._rooms: dict[str, Room] = {}
        # 默认房间随注册表一起创建
        self._rooms[default_room] = self._build_room(default_room)

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def _build_room(self, room_id: str, content: str = "") -> Room:
        room = Room(room_id, content=content, capacity=self.broadcast_capacity)
        if self.repo is not None:
            room.persister = ContentPersister(
                room_id, room.content, self.repo, interval=self.persist_interval,
            )
        return room

    # ── 生命周期 ──────────────────────────────────────────────────────

    async def open(self) -> None:
        """从存储恢复房间、补种默认房间记录并启动全部落库任务。"""
        if self.repo is not None:
            records = await self.repo.load_all()
            async with self._lock:
                for record in records:
                    room_id = record["room_id"]
                    logger.info(
                        "恢复房间 | room_id=%s | content=%d 字符",
                        room_id, len(record["content"]),
                    )
                    self._rooms[room_id] = self._build_room(room_id, record["content"])
            if not any(r["room_id"] == self.default_room for r in records):
                await self.repo.ensure_room(self.default_room)

        async with self._lock:
            rooms = list(self._rooms.values())
        for room in rooms:
            if room.persister is not None:
                room.persister.start()
        logger.info("房间注册表已就绪 | 房间数: %d", len(rooms))

    async def close(self) -> None:
        """停止所有落库任务，并把未写入的内容最后写一次。"""
        async with self._lock:
            rooms = list(self._rooms.values())
        for room in rooms:
            if room.persister is not None:
                await room.persister.stop(flush=True)

    # ── 房间访问 ──────────────────────────────────────────────────────

    def _get_or_create_locked(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            room = self._build_room(room_id)
            self._rooms[room_id] = room
            if room.persister is not None:
                room.persister.start()
            logger.info("房间已创建 | room_id=%s | 房间数: %d", room_id, len(self._rooms))
        return room

    async def get_or_create(self, room_id: str) -> Room:
        """获取指定房间（不存在则自动创建）。"""
        async with self._lock:
            return self._get_or_create_locked(room_id)

    async def join(self, room_id: str, username: str) -> JoinTicket:
        """登记成员、读取当前内容并订阅广播，对房间成员锁而言是原子的。

        同名用户重复加入同一房间是允许的，成员集合中只保留一份。
        """
        async with self._lock:
            room = self._get_or_create_locked(room_id)
            content, subscription = await room.admit(username)
        return JoinTicket(room=room, content=content, subscription=subscription)

    async def leave(self, room_id: str, username: str) -> bool:
        """把用户移出房间。

        Returns:
            房间仍存在时返回 True；房间已被删除时记录日志并返回 False。
        """
        async with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                logger.warning("移除成员失败，房间已不存在 | room_id=%s | user=%s", room_id, username)
                return False
            await room.remove_member(username)
        return True

    async def list_rooms(self) -> list[RoomData]:
        """列出所有房间及其成员（无顺序保证）。"""
        async with self._lock:
            return [await room.info() for room in self._rooms.values()]

    # ── 删除与通知 ────────────────────────────────────────────────────

    async def remove(self, room_id: str) -> bool:
        """删除房间。

        规则：默认房间不可删除；房间不存在时视为成功（幂等）；
        最后一个房间或成员多于一人的房间不可删除。

        Returns:
            True 表示确实删除了房间，False 表示房间本就不存在。

        Raises:
            RoomForbiddenError: 试图删除默认房间。
            RoomConflictError: 最后一个房间，或房间内多于一人。
        """
        if room_id == self.default_room:
            raise RoomForbiddenError("Cannot remove the default room.")

        async with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                logger.info("房间已被删除 | room_id=%s", room_id)
                return False
            if len(self._rooms) == 1:
                raise RoomConflictError("Cannot remove the last room.")
            async with room.members_lock:
                if len(room.members) > 1:
                    raise RoomConflictError("Room has more than 1 user.")
            del self._rooms[room_id]
            survivors = list(self._rooms.values())

        # 以下操作不持有注册表锁
        if room.persister is not None:
            await room.persister.stop(flush=False)
        if self.repo is not None:
            try:
                await self.repo.delete_room(room_id)
            except Exception as e:
                logger.warning("删除房间记录失败 | room_id=%s | %s", room_id, e, exc_info=True)
        room.broadcast.close()

        event = SocketMessage.rooms_changed()
        for survivor in survivors:
            survivor.publish(event)
        logger.info("房间已删除 | room_id=%s | 剩余房间数: %d", room_id, len(survivors))
        return True

    async def broadcast_rooms_changed(self, exclude: str | None = None) -> int:
        """向除 ``exclude`` 外的所有房间推送 ``update-rooms-list``。

        Returns:
            收到通知的房间数。
        """
        event = SocketMessage.rooms_changed()
        async with self._lock:
            targets = [room for room_id, room in self._rooms.items() if room_id != exclude]
            for room in targets:
                room.publish(event)
        return len(targets)
