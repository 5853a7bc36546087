"""Shared declarative base and enums for all models."""
from __future__ import annotations

import enum
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class VesselStatusEnum(str, enum.Enum):
    ACTIVE = "active"
