"""
roomrelay.db.room_repository
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间内容持久化仓库：封装 MongoDB ``rooms`` 集合的读写操作。

每个房间一个文档，只保存最新内容（``room_id`` 唯一索引）。
写入均为幂等 upsert，进程被中断时不会留下损坏的数据。
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import TypedDict

from motor.motor_asyncio import AsyncIOMotorDatabase

from roomrelay.core.logging import get_logger

logger = get_logger(__name__)

_COLLECTION_NAME = "rooms"


class RoomRecord(TypedDict):
    """代表 MongoDB 中 rooms 集合的单条记录"""
    room_id: str
    content: str


class RoomRepository:
    """房间内容持久化仓库。

    Attributes:
        db: MongoDB 数据库实例。
    """

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self.db = db
        self._collection = db[_COLLECTION_NAME]
        self._indexes_created = False

    async def _ensure_indexes(self) -> None:
        """首次访问集合前建立 room_id 唯一索引。"""
        if self._indexes_created:
            return
        await self._collection.create_index(
            "room_id",
            name="uniq_room_id",
            unique=True,
        )
        self._indexes_created = True
        logger.debug("rooms 索引已就绪")

    async def upsert_content(self, room_id: str, content: str) -> None:
        """写入（或覆盖）指定房间的最新内容。

        Args:
            room_id: 房间唯一标识。
            content: 房间当前内容。
        """
        await self._ensure_indexes()
        await self._collection.update_one(
            {"room_id": room_id},
            {"$set": {"content": content, "updated_at": datetime.now(timezone.utc)}},
            upsert=True,
        )

    async def ensure_room(self, room_id: str) -> None:
        """房间记录不存在时以空内容插入，已存在时不做修改。"""
        await self._ensure_indexes()
        await self._collection.update_one(
            {"room_id": room_id},
            {"$setOnInsert": {"content": "", "updated_at": datetime.now(timezone.utc)}},
            upsert=True,
        )

    async def delete_room(self, room_id: str) -> bool:
        """删除指定房间的记录。

        Returns:
            是否确实删除了一条记录。
        """
        await self._ensure_indexes()
        result = await self._collection.delete_one({"room_id": room_id})
        return result.deleted_count > 0

    async def load_all(self) -> list[RoomRecord]:
        """读取全部房间记录。仅在启动时用于恢复内存中的房间表。"""
        await self._ensure_indexes()
        cursor = self._collection.find(
            {},
            {"_id": 0, "room_id": 1, "content": 1},
        )
        records = await cursor.to_list(length=None)
        return [
            RoomRecord(room_id=doc["room_id"], content=doc.get("content") or "")
            for doc in records
        ]
