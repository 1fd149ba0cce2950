"""
roomrelay.services.content
~~~~~~~~~~~~~~~~~~~~~~~~~~

房间共享内容单元：当前值 + 单调递增版本号 + 变更通知。

值、版本号与唤醒在同一次同步调用中完成（中间没有 ``await``），
因此观察者不会看到新值却错过唤醒。等待方被唤醒后需重新比较版本号。
"""
from __future__ import annotations

import asyncio


class ContentCell:
    """单值变更单元。"""

    def __init__(self, value: str = "") -> None:
        self._value = value
        self._version = 0
        self._changed = asyncio.Event()

    @property
    def value(self) -> str:
        return self._value

    @property
    def version(self) -> int:
        return self._version

    def snapshot(self) -> tuple[str, int]:
        """同时读取当前值与版本号。"""
        return self._value, self._version

    def set(self, value: str) -> int:
        """覆盖当前值并唤醒所有等待方。

        Returns:
            新的版本号。
        """
        self._value = value
        self._version += 1
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()
        return self._version

    async def wait_changed(self, since: int) -> tuple[str, int]:
        """等待版本号超过 ``since``，返回此时的 ``(value, version)``。"""
        while self._version <= since:
            await self._changed.wait()
        return self.snapshot()
