"""Live view projector: latest validated position per vessel.

Lifecycle: IDLE → LOADING → LIVE → TORN_DOWN.

On start the projector bulk-loads a recent window from the store, reduces it
to one entry per MMSI, then subscribes to the change notifier and starts a
periodic reload as a safety net against missed events. Both paths merge with
the same rule: an entry is replaced only by a record with a strictly newer
``timestamp_utc``. The final projection is therefore independent of delivery
order and duplicates.

The projection is a plain mapping ``mmsi → ProjectionEntry``; any rendering
layer draws exactly one marker per key.
"""
from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable

from pydantic import ValidationError

from seawatch.config import settings
from seawatch.exceptions import StoreError
from seawatch.modules.normalize import to_naive_utc, utcnow
from seawatch.modules.notifier import POSITIONS_TABLE, ChangeEvent, ChangeNotifier, Subscription
from seawatch.modules.store import LiveStateStore
from seawatch.schemas.position import LivePositionRead, PositionRead

logger = logging.getLogger(__name__)


class ViewState(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    LIVE = "live"
    TORN_DOWN = "torn_down"


class SpeedBucket(str, enum.Enum):
    FAST = "fast"
    MEDIUM = "medium"
    SLOW = "slow"


def is_valid_coordinate(lat: Any, lon: Any) -> bool:
    if lat is None or lon is None:
        return False
    try:
        lat, lon = float(lat), float(lon)
    except (TypeError, ValueError):
        return False
    return -90 <= lat <= 90 and -180 <= lon <= 180


def classify_speed(
    speed_knots: float | None,
    fast_above: float | None = None,
    medium_from: float | None = None,
) -> SpeedBucket:
    """>fast_above is fast, >=medium_from is medium, anything else (incl. unknown) slow."""
    fast_above = settings.FAST_SPEED_KNOTS if fast_above is None else fast_above
    medium_from = settings.MEDIUM_SPEED_KNOTS if medium_from is None else medium_from
    if speed_knots is None:
        return SpeedBucket.SLOW
    if speed_knots > fast_above:
        return SpeedBucket.FAST
    if speed_knots >= medium_from:
        return SpeedBucket.MEDIUM
    return SpeedBucket.SLOW


def is_fresh(timestamp: datetime, now: datetime, threshold: timedelta) -> bool:
    """Fresh means strictly younger than *threshold*."""
    return now - to_naive_utc(timestamp) < threshold


def reduce_latest(records: Iterable[PositionRead]) -> dict[str, PositionRead]:
    """Keep, for each MMSI, the record with the maximum capture timestamp."""
    latest: dict[str, PositionRead] = {}
    for rec in records:
        current = latest.get(rec.mmsi)
        if current is None or to_naive_utc(rec.timestamp_utc) > to_naive_utc(current.timestamp_utc):
            latest[rec.mmsi] = rec
    return latest


@dataclass(frozen=True)
class ProjectionEntry:
    record: PositionRead
    is_fresh: bool
    speed_bucket: SpeedBucket

    def to_read(self) -> LivePositionRead:
        return LivePositionRead(
            **self.record.model_dump(),
            is_fresh=self.is_fresh,
            speed_bucket=self.speed_bucket.value,
        )


class LiveViewProjector:
    """Per-view projection of the newest validated position for every vessel."""

    def __init__(
        self,
        store: LiveStateStore,
        notifier: ChangeNotifier,
        window: timedelta | None = None,
        reload_interval: float | None = None,
        freshness: timedelta | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.window = window or timedelta(hours=settings.LIVE_WINDOW_HOURS)
        self.reload_interval = reload_interval or settings.LIVE_RELOAD_INTERVAL
        self.freshness = freshness or timedelta(minutes=settings.FRESHNESS_MINUTES)
        self.clock = clock
        self.state = ViewState.IDLE
        self._entries: dict[str, ProjectionEntry] = {}
        self._subscription: Subscription | None = None
        self._event_task: asyncio.Task | None = None
        self._reload_task: asyncio.Task | None = None

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        if self.state is not ViewState.IDLE:
            raise RuntimeError(f"Projector cannot start from state {self.state.value}")
        self.state = ViewState.LOADING
        try:
            self.reload()
            self._subscription = self.notifier.subscribe(
                lambda event: event.kind == "insert" and event.table == POSITIONS_TABLE
            )
            self._event_task = asyncio.create_task(self._consume_events())
            self._reload_task = asyncio.create_task(self._reload_periodically())
        except BaseException:
            await self.stop()
            raise
        self.state = ViewState.LIVE
        logger.info("Live view started with %d vessels", len(self._entries))

    async def stop(self) -> None:
        """Cancel the reload timer and close the subscription. Idempotent."""
        if self.state is ViewState.TORN_DOWN:
            return
        self.state = ViewState.TORN_DOWN
        tasks = [t for t in (self._reload_task, self._event_task) if t is not None]
        for task in tasks:
            task.cancel()
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._reload_task = None
        self._event_task = None

    async def __aenter__(self) -> "LiveViewProjector":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    # -- merging -------------------------------------------------------------

    def reload(self) -> int:
        """Bulk-load the recent window and merge it. Returns the number of entries changed."""
        if self.state is ViewState.TORN_DOWN:
            return 0
        records = self.store.positions_since(self.window, now=self.clock())
        changed = 0
        for rec in reduce_latest(r for r in records if self._validate(r)).values():
            if self._merge(rec):
                changed += 1
        self.refresh()
        logger.debug("Reloaded %d positions, %d entries changed", len(records), changed)
        return changed

    def apply_event(self, event: ChangeEvent) -> bool:
        if event.kind != "insert" or event.table != POSITIONS_TABLE:
            return False
        return self.apply_record(event.record)

    def apply_record(self, payload: dict[str, Any] | PositionRead) -> bool:
        """Validate and merge one inserted row. Returns True if the projection changed."""
        if self.state is ViewState.TORN_DOWN:
            return False
        if isinstance(payload, dict):
            if not is_valid_coordinate(payload.get("latitude"), payload.get("longitude")):
                logger.warning(
                    "Invalid coordinates for vessel %s: %s, %s",
                    payload.get("mmsi"), payload.get("latitude"), payload.get("longitude"),
                )
                return False
            try:
                record = PositionRead.model_validate(payload)
            except ValidationError as exc:
                logger.warning("Discarding malformed position event: %s", exc)
                return False
        else:
            record = payload
            if not self._validate(record):
                return False
        return self._merge(record)

    def _validate(self, record: PositionRead) -> bool:
        if is_valid_coordinate(record.latitude, record.longitude):
            return True
        logger.warning(
            "Invalid coordinates for vessel %s: %s, %s",
            record.mmsi, record.latitude, record.longitude,
        )
        return False

    def _merge(self, record: PositionRead) -> bool:
        current = self._entries.get(record.mmsi)
        if current is not None and (
            to_naive_utc(record.timestamp_utc) <= to_naive_utc(current.record.timestamp_utc)
        ):
            return False
        self._entries[record.mmsi] = self._entry_for(record, self.clock())
        return True

    def _entry_for(self, record: PositionRead, now: datetime) -> ProjectionEntry:
        return ProjectionEntry(
            record=record,
            is_fresh=is_fresh(record.timestamp_utc, now, self.freshness),
            speed_bucket=classify_speed(record.speed_knots),
        )

    def refresh(self) -> None:
        """Recompute derived flags (freshness ages with the clock)."""
        now = self.clock()
        for mmsi, entry in self._entries.items():
            self._entries[mmsi] = self._entry_for(entry.record, now)

    # -- reading -------------------------------------------------------------

    def snapshot(self) -> dict[str, ProjectionEntry]:
        return dict(self._entries)

    def get(self, mmsi: str) -> ProjectionEntry | None:
        return self._entries.get(mmsi)

    def status(self) -> str:
        """"live" while at least one validated position is fresh as of now, else "offline"."""
        now = self.clock()
        fresh = any(is_fresh(e.record.timestamp_utc, now, self.freshness) for e in self._entries.values())
        return "live" if fresh else "offline"

    def __len__(self) -> int:
        return len(self._entries)

    # -- background tasks ----------------------------------------------------

    async def _consume_events(self) -> None:
        if self._subscription is None:
            return
        async for event in self._subscription:
            self.apply_event(event)

    async def _reload_periodically(self) -> None:
        while True:
            await asyncio.sleep(self.reload_interval)
            try:
                self.reload()
            except StoreError as exc:
                logger.error("Periodic reload failed: %s", exc)
