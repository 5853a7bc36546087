"""Import all models to register them with SQLAlchemy metadata."""
from seawatch.models.base import Base
from seawatch.models.vessel import Vessel
from seawatch.models.vessel_position import VesselPosition

__all__ = [
    "Base",
    "Vessel",
    "VesselPosition",
]
