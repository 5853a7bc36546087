"""Pydantic schemas for decoded feed reports and stored positions."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class PositionReport(BaseModel):
    """A decoded PositionReport as handed from the feed client to the pipeline."""

    mmsi: str
    latitude: float
    longitude: float
    speed_knots: Optional[float] = None
    course_degrees: Optional[float] = None
    heading_degrees: Optional[float] = None
    nav_status: Optional[int] = None
    ship_name: Optional[str] = None
    ship_type: Optional[str] = None
    valid: Optional[bool] = None


class PositionRead(BaseModel):
    position_id: int
    vessel_id: int
    mmsi: str
    latitude: float
    longitude: float
    speed_knots: Optional[float] = None
    course_degrees: Optional[float] = None
    heading_degrees: Optional[float] = None
    nav_status: Optional[int] = None
    navigation_status: Optional[str] = None
    timestamp_utc: datetime
    source_feed: str
    data_quality_score: float = 1.0

    model_config = {"from_attributes": True}


class LivePositionRead(PositionRead):
    is_fresh: bool
    speed_bucket: str


class LivePositionsResponse(BaseModel):
    status: str
    window_hours: float
    vessel_count: int
    vessels: list[LivePositionRead]
