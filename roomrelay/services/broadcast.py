"""
roomrelay.services.broadcast
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间事件广播通道：多生产者 / 多消费者，发布端永不阻塞。

每个订阅者持有一个固定容量的环形缓冲区：慢消费者的缓冲区写满后，
新事件会挤掉最旧的事件（drop-oldest），丢弃数记录在 ``Subscription.dropped``。
同一订阅者看到的事件顺序与发布顺序一致；订阅只会收到订阅之后发布的事件。
"""
from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator

from roomrelay.schemas.events import SocketMessage


class ChannelClosed(Exception):
    """订阅（或其所属通道）已关闭，且缓冲区已经取空。"""


class Subscription:
    """单个订阅者的接收端。

    Attributes:
        dropped: 因缓冲区溢出被丢弃的事件数。
    """

    def __init__(self, channel: BroadcastChannel, capacity: int) -> None:
        self._channel = channel
        self._buffer: deque[SocketMessage] = deque(maxlen=capacity)
        self._ready = asyncio.Event()
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """缓冲区中尚未取走的事件数。"""
        return len(self._buffer)

    def _push(self, event: SocketMessage) -> None:
        if self._closed:
            return
        if len(self._buffer) == self._buffer.maxlen:
            self.dropped += 1
        self._buffer.append(event)
        self._ready.set()

    async def recv(self) -> SocketMessage:
        """等待并取出下一个事件。

        Raises:
            ChannelClosed: 订阅已关闭且没有剩余事件。
        """
        while not self._buffer:
            if self._closed:
                raise ChannelClosed
            self._ready.clear()
            await self._ready.wait()
        return self._buffer.popleft()

    def close(self) -> None:
        """取消订阅。可重复调用。"""
        if self._closed:
            return
        self._closed = True
        self._channel._discard(self)
        self._ready.set()

    def __aiter__(self) -> AsyncIterator[SocketMessage]:
        return self

    async def __anext__(self) -> SocketMessage:
        try:
            return await self.recv()
        except ChannelClosed:
            raise StopAsyncIteration from None


class BroadcastChannel:
    """房间级广播通道。

    Attributes:
        capacity: 每个订阅者缓冲区的容量。
    """

    def __init__(self, capacity: int = 100) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._subscribers: set[Subscription] = set()
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        """注册新订阅者。通道已关闭时返回一个已关闭的订阅。"""
        subscription = Subscription(self, self.capacity)
        if self._closed:
            subscription.close()
        else:
            self._subscribers.add(subscription)
        return subscription

    def publish(self, event: SocketMessage) -> int:
        """向所有当前订阅者投递事件，不等待任何消费者。

        Returns:
            收到该事件的订阅者数量。
        """
        receivers = list(self._subscribers)
        for subscription in receivers:
            subscription._push(event)
        return len(receivers)

    def close(self) -> None:
        """关闭通道并结束所有订阅者的迭代（已缓冲的事件仍可取出）。"""
        self._closed = True
        for subscription in list(self._subscribers):
            subscription.close()

    def _discard(self, subscription: Subscription) -> None:
        self._subscribers.discard(subscription)
