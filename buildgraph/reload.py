import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import anyio

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import AsyncIterator, Iterable

    from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

logger = logging.getLogger(__name__)


class ReloadHub:
    """
    Fan-out of changed paths to connected live-preview clients.

    Each subscriber gets its own bounded memory stream. Notifications never block
    a build: when a subscriber's buffer is full the notification is dropped for
    that subscriber.
    """

    def __init__(self, buffer: int = 16) -> None:
        self.buffer = buffer
        self._subscribers: set["MemoryObjectSendStream[tuple[str, ...]]"] = set()
        self.active = False

    @asynccontextmanager
    async def subscribe(
        self,
    ) -> "AsyncIterator[MemoryObjectReceiveStream[tuple[str, ...]]]":
        send_stream, receive_stream = anyio.create_memory_object_stream[
            tuple[str, ...]
        ](self.buffer)
        self._subscribers.add(send_stream)
        try:
            async with receive_stream:
                yield receive_stream
        finally:
            self._subscribers.discard(send_stream)
            await send_stream.aclose()

    def notify(self, paths: "Iterable[str]", *, once: bool = False) -> int:
        """
        Send changed paths to every subscriber; `once` collapses the batch into a
        single notification. Returns the number of notifications delivered.
        """
        batch = tuple(str(p) for p in paths)
        if not batch:
            return 0

        messages = [batch] if once else [(p,) for p in batch]
        delivered = 0
        for subscriber in list(self._subscribers):
            for message in messages:
                try:
                    subscriber.send_nowait(message)
                    delivered += 1
                except anyio.WouldBlock:
                    logger.debug("Reload buffer full, dropping %s", message)
                except (anyio.BrokenResourceError, anyio.ClosedResourceError):
                    self._subscribers.discard(subscriber)
                    break

        return delivered

    @property
    def subscribers(self) -> int:
        return len(self._subscribers)
