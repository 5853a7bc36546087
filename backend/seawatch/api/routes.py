from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder

from seawatch.api.deps import get_notifier, get_store
from seawatch.config import settings
from seawatch.exceptions import FeedConfigurationError
from seawatch.modules.feed_client import load_bounding_boxes, run_feed_session, validate_bounding_boxes
from seawatch.modules.ingestion import IngestionPipeline
from seawatch.modules.notifier import ChangeNotifier, Subscription
from seawatch.modules.projector import LiveViewProjector
from seawatch.modules.store import LiveStateStore
from seawatch.schemas.feed import FeedSessionRequest
from seawatch.schemas.position import LivePositionsResponse, PositionRead
from seawatch.schemas.vessel import VesselRead

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Positions
# ---------------------------------------------------------------------------


@router.get("/positions", response_model=list[PositionRead], tags=["positions"])
def list_positions(
    hours: float = Query(settings.LIVE_WINDOW_HOURS, gt=0, le=168),
    store: LiveStateStore = Depends(get_store),
):
    """All positions captured in the last *hours*, newest first."""
    return store.positions_since(timedelta(hours=hours))


@router.get("/positions/live", response_model=LivePositionsResponse, tags=["positions"])
def live_positions(
    hours: float = Query(settings.LIVE_WINDOW_HOURS, gt=0, le=168),
    store: LiveStateStore = Depends(get_store),
    notifier: ChangeNotifier = Depends(get_notifier),
):
    """Latest validated position per vessel, with freshness and speed bucket."""
    projector = LiveViewProjector(store, notifier, window=timedelta(hours=hours))
    projector.reload()
    entries = sorted(projector.snapshot().values(), key=lambda e: e.record.timestamp_utc, reverse=True)
    return LivePositionsResponse(
        status=projector.status(),
        window_hours=hours,
        vessel_count=len(entries),
        vessels=[e.to_read() for e in entries],
    )


@router.websocket("/positions/changes")
async def position_changes(websocket: WebSocket, mmsi: Optional[str] = None):
    """Realtime channel: forwards every committed position row as it is inserted."""
    await websocket.accept()
    predicate = (lambda event: event.record.get("mmsi") == mmsi) if mmsi else None
    sub = get_notifier().subscribe(predicate)
    watcher = asyncio.create_task(_unsubscribe_on_disconnect(websocket, sub))
    try:
        async for event in sub:
            await websocket.send_json(jsonable_encoder(event.to_dict()))
    except WebSocketDisconnect:
        pass
    finally:
        sub.unsubscribe()
        watcher.cancel()
    logger.info("Realtime subscriber disconnected")


async def _unsubscribe_on_disconnect(websocket: WebSocket, sub: Subscription) -> None:
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        sub.unsubscribe()


# ---------------------------------------------------------------------------
# Vessels
# ---------------------------------------------------------------------------


@router.get("/vessels/{mmsi}", response_model=VesselRead, tags=["vessels"])
def get_vessel(mmsi: str, store: LiveStateStore = Depends(get_store)):
    vessel = store.get_vessel(mmsi)
    if vessel is None:
        raise HTTPException(status_code=404, detail="Vessel not found")
    return vessel


@router.get("/vessels/{mmsi}/position", response_model=PositionRead, tags=["vessels"])
def get_vessel_position(mmsi: str, store: LiveStateStore = Depends(get_store)):
    position = store.latest_position(mmsi)
    if position is None:
        raise HTTPException(status_code=404, detail="No position recorded for vessel")
    return position


# ---------------------------------------------------------------------------
# Feed sessions
# ---------------------------------------------------------------------------


@router.post("/feed/sessions", status_code=202, tags=["feed"])
async def start_feed_session(
    background_tasks: BackgroundTasks,
    body: Optional[FeedSessionRequest] = None,
    store: LiveStateStore = Depends(get_store),
):
    """Start a bounded aisstream.io ingestion session in the background."""
    if not settings.AISSTREAM_API_KEY:
        raise FeedConfigurationError("AISSTREAM_API_KEY not configured")

    body = body or FeedSessionRequest()
    if body.bounding_boxes:
        boxes = validate_bounding_boxes(body.bounding_boxes)
    else:
        boxes = load_bounding_boxes()
    duration = body.duration_seconds or settings.AISSTREAM_DEFAULT_DURATION

    background_tasks.add_task(
        run_feed_session,
        settings.AISSTREAM_API_KEY,
        IngestionPipeline(store),
        bounding_boxes=boxes,
        duration_seconds=duration,
        idle_timeout=settings.AISSTREAM_IDLE_TIMEOUT,
    )
    logger.info("Feed session scheduled for %ss over %d bounding box(es)", duration, len(boxes) or 1)
    return {
        "status": "AISStream integration started",
        "duration_seconds": duration,
        "bounding_boxes": len(boxes) or 1,
    }
