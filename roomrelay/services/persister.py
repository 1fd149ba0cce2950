"""
roomrelay.services.persister
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间内容去抖落库：每个房间一个后台协程，把内存中的最新内容
以有限频率写入存储，与消息热路径完全解耦。

流程：等待内容版本号超过“已成功写入的版本” → 休眠一个去抖间隔（合并期间的
所有改动）→ 采样 ``(value, version)`` 并 upsert。写入失败只记录日志，
已写入版本不前移，下一轮自动重试。
"""
from __future__ import annotations

import asyncio
import contextlib
from typing import Protocol

from roomrelay.core.logging import get_logger
from roomrelay.services.content import ContentCell

logger = get_logger(__name__)


class ContentStore(Protocol):
    """持久化后端需要提供的最小接口（``RoomRepository`` 满足该协议）。"""

    async def upsert_content(self, room_id: str, content: str) -> None: ...


class ContentPersister:
    """单个房间的内容落库任务。

    Attributes:
        room_id: 所属房间 ID。
        interval: 去抖间隔（秒）。
        persisted_version: 最近一次成功写入时的内容版本号。
    """

    def __init__(
        self,
        room_id: str,
        content: ContentCell,
        store: ContentStore,
        interval: float = 2.0,
    ) -> None:
        self.room_id = room_id
        self.interval = interval
        self._content = content
        self._store = store
        # 创建时的内容视为已落库（新房间为空，恢复的房间来自存储本身）
        self.persisted_version: int = content.version
        self._task: asyncio.Task[None] | None = None
        # 正在进行的写入。motor 的写操作取消等待方也不会中止，必须等它落地
        self._inflight: asyncio.Task[bool] | None = None
        self._flush_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def dirty(self) -> bool:
        """内存中的内容是否领先于存储。"""
        return self._content.version != self.persisted_version

    def start(self) -> None:
        """启动后台任务。已在运行时不做任何事，必须在事件循环内调用。"""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"persist:{self.room_id}")

    async def _run(self) -> None:
        while True:
            await self._content.wait_changed(self.persisted_version)
            await asyncio.sleep(self.interval)
            await self.flush()

    async def flush(self) -> bool:
        """立即写入当前内容（如有变化）。

        同一时刻最多一个写入。等待方被取消时写入本身继续执行，
        ``stop()`` 会等它结束。

        Returns:
            本次是否成功写入。
        """
        async with self._flush_lock:
            value, version = self._content.snapshot()
            if version == self.persisted_version:
                return False
            self._inflight = asyncio.create_task(
                self._write(value, version), name=f"persist-write:{self.room_id}",
            )
            return await asyncio.shield(self._inflight)

    async def _write(self, value: str, version: int) -> bool:
        try:
            await self._store.upsert_content(self.room_id, value)
        except Exception as e:
            # 持久化失败不影响内存状态，下一轮重试
            logger.warning(
                "房间内容落库失败 | room=%s | version=%d | %s",
                self.room_id, version, e, exc_info=True,
            )
            return False
        self.persisted_version = max(self.persisted_version, version)
        logger.debug("房间内容已落库 | room=%s | version=%d", self.room_id, version)
        return True

    async def stop(self, flush: bool = True) -> None:
        """停止后台任务。

        Args:
            flush: 是否在停止后把尚未写入的内容最后写一次。
        """
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        inflight, self._inflight = self._inflight, None
        if inflight is not None and not inflight.done():
            # 已发出的写入落地后才返回，之后的删除不会被它覆盖
            await inflight
        if flush:
            await self.flush()
