"""Pydantic schemas for Vessel entity: used by FastAPI for response typing."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class VesselRead(BaseModel):
    vessel_id: int
    mmsi: str
    name: str
    vessel_type: str
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
