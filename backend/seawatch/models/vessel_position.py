"""VesselPosition entity: append-only position history."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Integer, Float, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column
from seawatch.models.base import Base


class VesselPosition(Base):
    __tablename__ = "vessel_positions"
    # No coordinate CHECK constraints: reports are stored as decoded and the
    # live view rejects out-of-range coordinates.
    __table_args__ = (
        Index("ix_vessel_positions_mmsi_ts", "mmsi", "timestamp_utc"),
    )

    position_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vessel_id: Mapped[int] = mapped_column(Integer, ForeignKey("vessels.vessel_id"), nullable=False, index=True)
    mmsi: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    speed_knots: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    course_degrees: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    heading_degrees: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    nav_status: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    navigation_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    timestamp_utc: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    source_feed: Mapped[str] = mapped_column(String(100), nullable=False)
    data_quality_score: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
