"""Schemas for feed session control and reporting."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class FeedSessionRequest(BaseModel):
    duration_seconds: Optional[int] = Field(default=None, ge=1, le=3600)
    bounding_boxes: Optional[list[list[list[float]]]] = None


class FeedSessionResult(BaseModel):
    """Final status of one feed session, for operational logging only."""

    processed_count: int = 0
    error_count: int = 0
    ignored_count: int = 0
    credential_present: bool = False
    duration_seconds: float = 0.0
    incomplete: bool = False
    error: Optional[str] = None
