"""
Multi-subscriber broadcast channel for asyncio.

Each subscriber gets its own unbounded queue, so a slow consumer never
blocks the publisher or other consumers.  Errors travel in-band: ``get()``
raises them at the point in the sequence where they were published, and the
subscription stays usable afterwards.

Usage:
    channel = Broadcaster()
    sub = channel.subscribe()
    channel.publish(value)
    channel.publish_error(NoActivePlayer())
    try:
        value = await sub.get()
    except ChannelClosed:
        ...
"""

import asyncio


class ChannelClosed(Exception):
    """Raised by Subscription.get() once the channel (or subscription) is closed."""


_CLOSED = object()


class _Failure:
    __slots__ = ("error",)

    def __init__(self, error: BaseException):
        self.error = error


class Subscription:

    def __init__(self, broadcaster: "Broadcaster"):
        self._broadcaster = broadcaster
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def _push(self, item):
        self._queue.put_nowait(item)

    def qsize(self) -> int:
        return self._queue.qsize()

    async def get(self):
        """Next published value.  Raises published errors and ChannelClosed."""
        if self.closed and self._queue.empty():
            raise ChannelClosed()
        item = await self._queue.get()
        if item is _CLOSED:
            self.closed = True
            raise ChannelClosed()
        if isinstance(item, _Failure):
            raise item.error
        return item

    def cancel(self):
        """Detach from the channel and wake any pending ``get()``."""
        if self.closed:
            return
        self._broadcaster._discard(self)
        self.closed = True
        self._push(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self):
        try:
            return await self.get()
        except ChannelClosed:
            raise StopAsyncIteration


class Broadcaster:

    def __init__(self):
        self._subscribers: set[Subscription] = set()
        self.closed = False

    def subscribe(self) -> Subscription:
        sub = Subscription(self)
        if self.closed:
            sub.closed = True
            sub._push(_CLOSED)
        else:
            self._subscribers.add(sub)
        return sub

    def publish(self, value):
        if self.closed:
            return
        for sub in list(self._subscribers):
            sub._push(value)

    def publish_error(self, error: BaseException):
        if self.closed:
            return
        failure = _Failure(error)
        for sub in list(self._subscribers):
            sub._push(failure)

    def close(self):
        if self.closed:
            return
        self.closed = True
        for sub in list(self._subscribers):
            sub._push(_CLOSED)
        self._subscribers.clear()

    def _discard(self, sub: Subscription):
        self._subscribers.discard(sub)

    def __len__(self):
        return len(self._subscribers)
