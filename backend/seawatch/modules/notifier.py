"""In-process change notifier: fan-out of "position inserted" events.

Each subscriber owns a bounded FIFO queue bound to the event loop it
subscribed from, so events for one vessel reach a subscriber in insertion
order. A subscriber only sees events published after it subscribed; prior
state must be bulk-loaded from the store. When a slow subscriber falls
NOTIFIER_QUEUE_SIZE events behind, further events are dropped for it and
counted in ``Subscription.dropped``; it catches up by reloading.

Usage:
    sub = notifier.subscribe(lambda ev: ev.record["mmsi"] == "123456789")
    async for event in sub:
        ...
    sub.unsubscribe()
"""
from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

from seawatch.config import settings

logger = logging.getLogger(__name__)

POSITIONS_TABLE = "vessel_positions"


@dataclass(frozen=True)
class ChangeEvent:
    """A committed row change, shaped like a database realtime payload."""

    record: dict[str, Any]
    kind: str = "insert"
    table: str = POSITIONS_TABLE
    schema: str = "public"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "table": self.table,
            "schema": self.schema,
            "record": self.record,
        }


Predicate = Callable[[ChangeEvent], bool]


@dataclass(eq=False)
class Subscription:
    """Handle returned by :meth:`ChangeNotifier.subscribe`."""

    notifier: "ChangeNotifier"
    predicate: Predicate | None
    loop: asyncio.AbstractEventLoop
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    closed: bool = False
    dropped: int = 0

    def matches(self, event: ChangeEvent) -> bool:
        if self.predicate is None:
            return True
        try:
            return bool(self.predicate(event))
        except Exception as exc:
            logger.warning("Subscription predicate failed, skipping event: %s", exc)
            return False

    async def get(self) -> ChangeEvent:
        """Wait for the next event. Raises StopAsyncIteration once unsubscribed."""
        if self.closed:
            raise StopAsyncIteration
        event = await self.queue.get()
        if event is None:
            raise StopAsyncIteration
        return event

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        return await self.get()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.unsubscribe()

    def unsubscribe(self) -> None:
        if self.closed:
            return
        self.notifier._remove(self)
        self.closed = True
        # Wake any consumer blocked in get()
        self._deliver(None)

    def _deliver(self, item: ChangeEvent | None) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self.loop:
            self._put(item)
        elif not self.loop.is_closed():
            self.loop.call_soon_threadsafe(self._put, item)

    def _put(self, item: ChangeEvent | None) -> None:
        try:
            self.queue.put_nowait(item)
        except asyncio.QueueFull:
            # A closed subscription stops in get() without the wake-up sentinel
            if item is None:
                return
            self.dropped += 1
            if self.dropped == 1 or self.dropped % 1000 == 0:
                logger.warning(
                    "Subscriber queue full (%d pending), %d event(s) dropped; reload to reconcile",
                    self.queue.qsize(), self.dropped,
                )


class ChangeNotifier:
    """Best-effort publish/subscribe hub for committed position rows."""

    def __init__(self, max_queue_size: int | None = None) -> None:
        self.max_queue_size = settings.NOTIFIER_QUEUE_SIZE if max_queue_size is None else max_queue_size
        self._subscribers: list[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self, predicate: Predicate | None = None) -> Subscription:
        """Register a subscriber. Must be called from inside a running event loop."""
        sub = Subscription(
            notifier=self,
            predicate=predicate,
            loop=asyncio.get_running_loop(),
            queue=asyncio.Queue(maxsize=self.max_queue_size),
        )
        with self._lock:
            self._subscribers.append(sub)
        logger.debug("Subscriber added (%d active)", len(self._subscribers))
        return sub

    def publish(self, event: ChangeEvent) -> int:
        """Hand *event* to every matching subscriber. Returns how many it was handed to."""
        with self._lock:
            targets = list(self._subscribers)
        delivered = 0
        for sub in targets:
            if sub.closed or not sub.matches(event):
                continue
            sub._deliver(event)
            delivered += 1
        return delivered

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)
