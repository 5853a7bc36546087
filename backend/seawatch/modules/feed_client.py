"""aisstream.io WebSocket client: one bounded streaming session per call.

Connects to wss://stream.aisstream.io/v0/stream, sends a single
subscription message, and hands every PositionReport to the ingestion
pipeline in arrival order. Sessions are never retried: they end when the
duration elapses, the feed goes idle, or the transport closes.

Usage:
    from seawatch.modules.feed_client import run_feed_session
    result = asyncio.run(run_feed_session(api_key, pipeline, duration_seconds=300))
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any, AsyncIterator, Callable

import websockets
import yaml

from seawatch.config import settings
from seawatch.exceptions import FeedConfigurationError, FeedDecodeError
from seawatch.modules.ingestion import IngestionPipeline, SessionCounters
from seawatch.modules.normalize import (
    ais_type_to_string,
    clean_cog,
    clean_heading,
    clean_sog,
)
from seawatch.schemas.feed import FeedSessionResult
from seawatch.schemas.position import PositionReport

logger = logging.getLogger(__name__)

POSITION_REPORT = "PositionReport"
GLOBAL_BOUNDING_BOX: list[list[float]] = [[-90.0, -180.0], [90.0, 180.0]]


def _validate_box(box: Any) -> list[list[float]]:
    try:
        (lat_a, lon_a), (lat_b, lon_b) = box
        corners = [[float(lat_a), float(lon_a)], [float(lat_b), float(lon_b)]]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Bounding box must be [[lat, lon], [lat, lon]], got {box!r}") from exc
    for lat, lon in corners:
        if not (-90 <= lat <= 90) or not (-180 <= lon <= 180):
            raise ValueError(f"Bounding box corner out of range: [{lat}, {lon}]")
    return corners


def validate_bounding_boxes(boxes: list | None) -> list[list[list[float]]]:
    """Normalize a list of bounding boxes; an empty result means global coverage."""
    return [_validate_box(b) for b in boxes or []]


def load_bounding_boxes(path: str | Path | None = None) -> list[list[list[float]]]:
    """Load named bounding boxes from a regions YAML file.

    Returns an empty list (meaning global coverage) when the file is missing
    or defines no regions.
    """
    config_path = Path(path or settings.REGIONS_CONFIG)
    if not config_path.exists():
        logger.info("No regions file at %s, subscribing globally", config_path)
        return []
    with open(config_path) as f:
        data = yaml.safe_load(f) or {}
    regions = data.get("regions") or {}
    boxes = validate_bounding_boxes(list(regions.values()))
    logger.info("Loaded %d bounding box(es) from %s", len(boxes), config_path)
    return boxes


def build_subscription(
    credential: str,
    bounding_boxes: list[list[list[float]]] | None = None,
    mmsi_filter: list[str] | None = None,
) -> dict[str, Any]:
    """Build the subscription message sent once right after connecting."""
    boxes = validate_bounding_boxes(bounding_boxes) or [GLOBAL_BOUNDING_BOX]
    return {
        "APIKey": credential,
        "BoundingBoxes": boxes,
        "FiltersShipMMSI": list(mmsi_filter or []),
        "FilterMessageTypes": [POSITION_REPORT],
    }


def decode_frame(frame: str | bytes | bytearray) -> dict[str, Any]:
    """Decode one inbound frame (text or binary-wrapped JSON) into a message dict."""
    if isinstance(frame, (bytes, bytearray)):
        try:
            frame = bytes(frame).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FeedDecodeError(f"Binary frame is not UTF-8: {exc}") from exc
    if not isinstance(frame, str):
        raise FeedDecodeError(f"Unsupported frame type: {type(frame).__name__}")
    try:
        message = json.loads(frame)
    except json.JSONDecodeError as exc:
        raise FeedDecodeError(f"Invalid JSON: {exc}") from exc
    if not isinstance(message, dict):
        raise FeedDecodeError("Message is not a JSON object")
    return message


def extract_position_report(message: dict[str, Any]) -> PositionReport | None:
    """Return the decoded PositionReport, or None for any other message kind."""
    if message.get("MessageType") != POSITION_REPORT:
        return None

    meta = message.get("MetaData") or {}
    if not isinstance(meta, dict):
        raise FeedDecodeError("MetaData is not a JSON object")
    body = message.get("Message") or {}
    report = body.get(POSITION_REPORT) if isinstance(body, dict) else None
    if not isinstance(report, dict) or not report:
        raise FeedDecodeError("PositionReport message without a PositionReport body")

    user_id = report.get("UserID", meta.get("MMSI"))
    if user_id in (None, "", 0, "0"):
        raise FeedDecodeError("PositionReport without a vessel identity")

    lat = report.get("Latitude", meta.get("latitude"))
    lon = report.get("Longitude", meta.get("longitude"))
    if lat is None or lon is None:
        raise FeedDecodeError(f"PositionReport for {user_id} without coordinates")

    nav_status = report.get("NavigationalStatus", report.get("NavigationStatus"))
    ship_name = report.get("ShipName") or meta.get("ShipName") or ""
    if not isinstance(ship_name, str):
        raise FeedDecodeError(f"PositionReport for {user_id} has a non-text ShipName")
    ship_name = ship_name.strip() or None
    type_code = report.get("ShipAndCargoType", report.get("Type"))

    try:
        return PositionReport(
            mmsi=str(int(user_id)),
            latitude=float(lat),
            longitude=float(lon),
            speed_knots=clean_sog(report.get("Sog")),
            course_degrees=clean_cog(report.get("Cog")),
            heading_degrees=clean_heading(report.get("TrueHeading")),
            nav_status=int(nav_status) if nav_status is not None else None,
            ship_name=ship_name,
            ship_type=ais_type_to_string(int(type_code)) if type_code is not None else None,
            valid=report.get("Valid"),
        )
    except (TypeError, ValueError) as exc:
        raise FeedDecodeError(f"Malformed PositionReport for {user_id}: {exc}") from exc


async def iter_frames(ws, idle_timeout: float | None = None) -> AsyncIterator[Any]:
    """Yield inbound frames until the peer closes or no frame arrives for *idle_timeout*."""
    while True:
        try:
            if idle_timeout:
                frame = await asyncio.wait_for(ws.recv(), timeout=idle_timeout)
            else:
                frame = await ws.recv()
        except asyncio.TimeoutError:
            logger.warning("aisstream.io idle for %ss, ending session", idle_timeout)
            return
        except websockets.ConnectionClosedOK:
            logger.info("aisstream.io connection closed by peer")
            return
        yield frame


def handle_frame(frame: Any, pipeline: IngestionPipeline, counters: SessionCounters) -> None:
    """Decode one frame and forward a PositionReport to the pipeline."""
    try:
        report = extract_position_report(decode_frame(frame))
    except FeedDecodeError as exc:
        counters.error_count += 1
        logger.warning("Error decoding AIS message: %s", exc)
        return

    if report is None:
        counters.ignored_count += 1
        return

    pipeline.process(report, counters)


async def run_feed_session(
    credential: str | None,
    pipeline: IngestionPipeline,
    bounding_boxes: list[list[list[float]]] | None = None,
    duration_seconds: float | None = None,
    idle_timeout: float | None = None,
    ws_url: str | None = None,
    connect: Callable[..., Any] | None = None,
) -> FeedSessionResult:
    """Run one bounded streaming session and return its final counters.

    Args:
        credential: aisstream.io API key. Missing key raises FeedConfigurationError
            before any connection is attempted.
        pipeline: Ingestion pipeline receiving each decoded report.
        bounding_boxes: [[lat, lon], [lat, lon]] pairs; global when empty.
        duration_seconds: Session limit (None/0 = until the feed closes or idles).
        idle_timeout: Seconds without a frame before the session ends.
        ws_url: Override for settings.AISSTREAM_WS_URL.
        connect: WebSocket connect factory (defaults to ``websockets.connect``).
    """
    if not credential:
        raise FeedConfigurationError("AISSTREAM_API_KEY not configured")

    connect = connect or websockets.connect
    ws_url = ws_url or settings.AISSTREAM_WS_URL
    subscription = build_subscription(credential, bounding_boxes)
    counters = SessionCounters()
    result = FeedSessionResult(credential_present=True)
    start_time = time.monotonic()

    async def _consume() -> None:
        async with connect(ws_url) as ws:
            await ws.send(json.dumps(subscription))
            logger.info(
                "Connected to aisstream.io, streaming %d bounding box(es) for %ss",
                len(subscription["BoundingBoxes"]),
                duration_seconds or "unlimited",
            )
            async for frame in iter_frames(ws, idle_timeout):
                handle_frame(frame, pipeline, counters)

    task = asyncio.ensure_future(_consume())
    try:
        done, _ = await asyncio.wait({task}, timeout=duration_seconds or None)
        if task in done:
            task.result()
        else:
            logger.info("Session duration of %ss elapsed, closing connection", duration_seconds)
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
    except (websockets.WebSocketException, OSError) as exc:
        logger.error("aisstream.io transport error: %s", exc)
        result.incomplete = True
        result.error = str(exc)
    finally:
        if not task.done():
            task.cancel()

    result.processed_count = counters.processed_count
    result.error_count = counters.error_count
    result.ignored_count = counters.ignored_count
    result.duration_seconds = round(time.monotonic() - start_time, 1)
    logger.info(
        "aisstream.io session complete: %d processed, %d errors, %d ignored",
        result.processed_count, result.error_count, result.ignored_count,
    )
    return result
