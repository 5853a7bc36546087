"""Live state store: durable vessel identities and position history.

The ingestion pipeline and the live view depend only on the
:class:`LiveStateStore` protocol. :class:`SqlLiveStateStore` implements it on
SQLAlchemy and publishes a change event for every committed position row.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from seawatch.exceptions import StoreError
from seawatch.models.vessel import Vessel
from seawatch.models.vessel_position import VesselPosition
from seawatch.modules.normalize import utcnow
from seawatch.modules.notifier import ChangeEvent, ChangeNotifier
from seawatch.schemas.position import PositionRead
from seawatch.schemas.vessel import VesselRead

logger = logging.getLogger(__name__)


class LiveStateStore(Protocol):
    def upsert_vessel(self, mmsi: str, name: str, vessel_type: str, status: str = "active") -> VesselRead: ...

    def insert_position(self, **fields) -> PositionRead: ...

    def positions_since(self, window: timedelta, now: datetime | None = None) -> list[PositionRead]: ...

    def latest_position(self, mmsi: str) -> PositionRead | None: ...

    def get_vessel(self, mmsi: str) -> VesselRead | None: ...


def _dialect_insert(db: Session):
    """Return the dialect-specific ``insert`` construct supporting ON CONFLICT."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise StoreError(f"Upsert not supported for dialect {dialect!r}")
    return insert


class SqlLiveStateStore:
    """SQLAlchemy-backed store. Each operation runs in its own short session."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        notifier: ChangeNotifier | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._notifier = notifier

    def upsert_vessel(self, mmsi: str, name: str, vessel_type: str, status: str = "active") -> VesselRead:
        """Insert or update the identity row for *mmsi* (conflict target: mmsi)."""
        db = self._session_factory()
        try:
            insert = _dialect_insert(db)
            stmt = insert(Vessel).values(
                mmsi=mmsi, name=name, vessel_type=vessel_type, status=status,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["mmsi"],
                set_={
                    "name": stmt.excluded.name,
                    "vessel_type": stmt.excluded.vessel_type,
                    "status": stmt.excluded.status,
                    "updated_at": utcnow(),
                },
            ).returning(Vessel.vessel_id)
            vessel_id = db.execute(stmt).scalar_one()
            db.commit()
            vessel = db.get(Vessel, vessel_id)
            return VesselRead.model_validate(vessel)
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreError(f"Vessel upsert failed for {mmsi}: {exc}") from exc
        finally:
            db.close()

    def insert_position(self, **fields) -> PositionRead:
        """Append one position row and notify subscribers after commit."""
        db = self._session_factory()
        try:
            row = VesselPosition(**fields)
            db.add(row)
            db.commit()
            db.refresh(row)
            record = PositionRead.model_validate(row)
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreError(f"Position insert failed for {fields.get('mmsi')}: {exc}") from exc
        finally:
            db.close()

        if self._notifier is not None:
            self._notifier.publish(ChangeEvent(record=record.model_dump()))
        return record

    def positions_since(self, window: timedelta, now: datetime | None = None) -> list[PositionRead]:
        """All positions with ``timestamp_utc >= now - window``, newest first."""
        cutoff = (now or utcnow()) - window
        db = self._session_factory()
        try:
            rows = db.execute(
                select(VesselPosition)
                .where(VesselPosition.timestamp_utc >= cutoff)
                .order_by(VesselPosition.timestamp_utc.desc())
            ).scalars().all()
            return [PositionRead.model_validate(r) for r in rows]
        except SQLAlchemyError as exc:
            raise StoreError(f"Position window query failed: {exc}") from exc
        finally:
            db.close()

    def latest_position(self, mmsi: str) -> PositionRead | None:
        db = self._session_factory()
        try:
            row = db.execute(
                select(VesselPosition)
                .where(VesselPosition.mmsi == mmsi)
                .order_by(VesselPosition.timestamp_utc.desc(), VesselPosition.position_id.desc())
                .limit(1)
            ).scalars().first()
            return PositionRead.model_validate(row) if row else None
        except SQLAlchemyError as exc:
            raise StoreError(f"Latest position query failed for {mmsi}: {exc}") from exc
        finally:
            db.close()

    def get_vessel(self, mmsi: str) -> VesselRead | None:
        db = self._session_factory()
        try:
            vessel = db.execute(select(Vessel).where(Vessel.mmsi == mmsi)).scalars().first()
            return VesselRead.model_validate(vessel) if vessel else None
        except SQLAlchemyError as exc:
            raise StoreError(f"Vessel lookup failed for {mmsi}: {exc}") from exc
        finally:
            db.close()
