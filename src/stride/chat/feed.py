"""In-process realtime change feed.

Writers publish :class:`ChangeEvent` values after their transaction
commits; readers ``subscribe(channel)`` and iterate the returned
:class:`Subscription`.  Each subscription owns an unbounded queue, so a
slow reader never blocks a writer (there is no backpressure).  Call
``cancel()`` (or leave the ``async with`` block) to detach; events
already queued are still delivered before iteration ends.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)


class EventKind(enum.Enum):
    """Row change kinds."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """A committed row change on one channel."""

    kind: EventKind
    channel: str
    record: dict[str, Any]
    table: str = "messages"


class Subscription:
    """Cancellable stream of events for one channel."""

    def __init__(self, feed: ChangeFeed, channel: str) -> None:
        self.channel = channel
        self._feed = feed
        self._queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue()
        self._closed = False

    def _deliver(self, event: ChangeEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def cancel(self) -> None:
        """Detach from the feed. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._feed._discard(self)
        self._queue.put_nowait(None)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> ChangeEvent:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.cancel()


class ChangeFeed:
    """Fan-out of change events to per-channel subscribers."""

    def __init__(self) -> None:
        self._subscribers: dict[str, set[Subscription]] = {}
        self._closed = False

    def subscribe(self, channel: str) -> Subscription:
        if self._closed:
            msg = "Change feed is closed"
            raise RuntimeError(msg)
        sub = Subscription(self, channel)
        self._subscribers.setdefault(channel, set()).add(sub)
        logger.debug("Subscribed to channel %s", channel)
        return sub

    def publish(self, event: ChangeEvent) -> int:
        """Deliver *event* to the channel's subscribers. Returns the count."""
        subs = self._subscribers.get(event.channel, ())
        for sub in list(subs):
            sub._deliver(event)
        return len(subs)

    def subscriber_count(self, channel: str | None = None) -> int:
        if channel is not None:
            return len(self._subscribers.get(channel, ()))
        return sum(len(s) for s in self._subscribers.values())

    def close(self) -> None:
        """End every subscription. Further ``subscribe`` calls fail."""
        self._closed = True
        for subs in list(self._subscribers.values()):
            for sub in list(subs):
                sub.cancel()
        self._subscribers.clear()

    def _discard(self, sub: Subscription) -> None:
        subs = self._subscribers.get(sub.channel)
        if subs is None:
            return
        subs.discard(sub)
        if not subs:
            del self._subscribers[sub.channel]
