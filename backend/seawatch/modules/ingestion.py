"""Ingestion pipeline: one decoded position report → identity upsert + position insert.

The identity upsert always completes before the position insert, so a
position row is never written without a resolved vessel reference. Errors are
per report: they are counted and logged, and the session carries on.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from seawatch.config import settings
from seawatch.exceptions import StoreError
from seawatch.modules.normalize import (
    UNKNOWN_VESSEL_TYPE,
    fallback_vessel_name,
    navigation_status_text,
    utcnow,
)
from seawatch.modules.store import LiveStateStore
from seawatch.schemas.position import PositionRead, PositionReport

logger = logging.getLogger(__name__)

DEFAULT_QUALITY_SCORE = 1.0
# Reports flagged Valid=false by the feed are kept at reduced quality
INVALID_FLAG_QUALITY_SCORE = 0.5


@dataclass
class SessionCounters:
    """Per-session counters, owned by one feed session."""

    processed_count: int = 0
    error_count: int = 0
    ignored_count: int = 0


class IngestionPipeline:
    def __init__(
        self,
        store: LiveStateStore,
        source_feed: str | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.source_feed = source_feed or settings.SOURCE_FEED
        self.clock = clock

    def process(self, report: PositionReport, counters: SessionCounters) -> PositionRead | None:
        """Persist one report. Returns the stored position, or None on failure."""
        try:
            vessel = self.store.upsert_vessel(
                mmsi=report.mmsi,
                name=report.ship_name or fallback_vessel_name(report.mmsi),
                vessel_type=report.ship_type or UNKNOWN_VESSEL_TYPE,
                status="active",
            )
        except StoreError as exc:
            counters.error_count += 1
            logger.error("Error storing vessel %s: %s", report.mmsi, exc)
            return None

        try:
            position = self.store.insert_position(
                vessel_id=vessel.vessel_id,
                mmsi=report.mmsi,
                latitude=report.latitude,
                longitude=report.longitude,
                speed_knots=report.speed_knots,
                course_degrees=report.course_degrees,
                heading_degrees=report.heading_degrees,
                nav_status=report.nav_status,
                navigation_status=navigation_status_text(report.nav_status),
                timestamp_utc=self.clock(),
                source_feed=self.source_feed,
                data_quality_score=(
                    INVALID_FLAG_QUALITY_SCORE if report.valid is False else DEFAULT_QUALITY_SCORE
                ),
            )
        except StoreError as exc:
            counters.error_count += 1
            logger.error("Error storing position for %s: %s", report.mmsi, exc)
            return None

        counters.processed_count += 1
        logger.info(
            "Stored position for vessel %s (%.4f, %.4f), total %d",
            report.mmsi, report.latitude, report.longitude, counters.processed_count,
        )
        return position
