"""
roomrelay.services.room
~~~~~~~~~~~~~~~~~~~~~~~

聊天房间领域模型：成员集合、广播通道与共享内容。

每个 ``Room`` 拥有独立的成员锁、广播通道和内容单元，
一个房间的活动不会阻塞其他房间。
"""
from __future__ import annotations

import asyncio

from roomrelay.schemas.events import SocketMessage
from roomrelay.schemas.rooms import RoomData
from roomrelay.services.broadcast import BroadcastChannel, Subscription
from roomrelay.services.content import ContentCell
from roomrelay.services.persister import ContentPersister


class Room:
    """一个聊天房间。

    Attributes:
        room_id: 房间唯一标识。
        members: 当前在房间内的显示名称（仅房间内去重）。
        members_lock: 保护 ``members`` 的锁。
        broadcast: 本房间的事件广播通道。
        content: 本房间的共享内容。
        persister: 内容落库任务（未配置存储时为 ``None``）。
    """

    def __init__(self, room_id: str, content: str = "", capacity: int = 100) -> None:
        self.room_id = room_id
        self.members: set[str] = set()
        self.members_lock = asyncio.Lock()
        self.broadcast = BroadcastChannel(capacity)
        self.content = ContentCell(content)
        self.persister: ContentPersister | None = None

    # ── 成员 ──────────────────────────────────────────────────────────

    async def admit(self, username: str) -> tuple[str, Subscription]:
        """登记成员，并在同一把锁内读取当前内容、订阅广播。

        新成员因此不会错过加入之后发布的任何事件。同名重复加入只保留一份。

        Returns:
            (加入时的内容快照, 广播订阅)。
        """
        async with self.members_lock:
            self.members.add(username)
            return self.current_content(), self.subscribe()

    async def remove_member(self, username: str) -> None:
        async with self.members_lock:
            self.members.discard(username)

    async def member_names(self) -> list[str]:
        """成员名称快照（排序后返回）。"""
        async with self.members_lock:
            return sorted(self.members)

    @property
    def online_count(self) -> int:
        """当前成员数。"""
        return len(self.members)

    # ── 广播 ──────────────────────────────────────────────────────────

    def publish(self, event: SocketMessage) -> int:
        return self.broadcast.publish(event)

    def subscribe(self) -> Subscription:
        return self.broadcast.subscribe()

    # ── 内容 ──────────────────────────────────────────────────────────

    def set_content(self, value: str) -> int:
        """覆盖共享内容，返回新的版本号。"""
        return self.content.set(value)

    def current_content(self) -> str:
        return self.content.value

    async def info(self) -> RoomData:
        """返回房间摘要信息。"""
        return RoomData(id=self.room_id, users=await self.member_names())
