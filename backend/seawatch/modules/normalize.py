"""AIS field normalization shared by the feed client and the ingestion pipeline."""
from __future__ import annotations

from datetime import datetime, timezone

# ITU-R M.1371 navigational status codes
NAV_STATUS_TEXT: dict[int, str] = {
    0: "Under way using engine",
    1: "At anchor",
    2: "Not under command",
    3: "Restricted manoeuvrability",
    4: "Constrained by her draught",
    5: "Moored",
    6: "Aground",
    7: "Engaged in fishing",
    8: "Under way sailing",
    15: "Undefined",
}

UNKNOWN_VESSEL_TYPE = "Unknown"


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(ts: datetime) -> datetime:
    if ts.tzinfo is not None:
        return ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts


def navigation_status_text(code: int | None) -> str | None:
    if code is None:
        return None
    return NAV_STATUS_TEXT.get(code, "Unknown")


def ais_type_to_string(type_code: int | None) -> str | None:
    """Convert AIS ship-and-cargo type code to a human-readable string."""
    if not type_code:
        return None
    if 80 <= type_code <= 89:
        return "Tanker"
    if 70 <= type_code <= 79:
        return "Cargo"
    if 60 <= type_code <= 69:
        return "Passenger"
    if 40 <= type_code <= 49:
        return "High Speed Craft"
    if 30 <= type_code <= 39:
        return "Fishing"
    return f"Type {type_code}"


def fallback_vessel_name(mmsi: str) -> str:
    return f"Vessel-{mmsi}"


def clean_sog(sog: float | None) -> float | None:
    # 102.3 (raw 1023) = "not available"
    if sog is None or sog >= 102.2:
        return None
    return float(sog)


def clean_cog(cog: float | None) -> float | None:
    # 360.0 (raw 3600) = "not available"
    if cog is None or cog >= 360.0:
        return None
    return float(cog)


def clean_heading(heading: float | None) -> float | None:
    # 511 = "not available"
    if heading is None or heading == 511:
        return None
    return float(heading)
