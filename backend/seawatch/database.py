"""Engine and session factory for the position store."""
from __future__ import annotations

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from seawatch.config import settings

_IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def make_engine(url: str | None = None) -> Engine:
    """Build an engine for *url* (defaults to settings.DATABASE_URL).

    SQLite connections enforce foreign keys so a position can never reference
    a missing vessel. An in-memory database shares a single connection across
    threads, otherwise every session would see its own empty database.
    """
    url = url or settings.DATABASE_URL
    if not url.startswith("sqlite"):
        return create_engine(
            url,
            pool_pre_ping=True,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
        )

    in_memory = url in _IN_MEMORY_URLS
    kwargs: dict = {"connect_args": {"check_same_thread": False}}
    if in_memory:
        kwargs["poolclass"] = StaticPool
    sqlite_engine = create_engine(url, **kwargs)

    @event.listens_for(sqlite_engine, "connect")
    def _set_sqlite_pragmas(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        if not in_memory:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return sqlite_engine


engine = make_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Engine | None = None) -> None:
    """Create the vessels and vessel_positions tables if missing."""
    from seawatch.models import Base  # noqa: F401 -- registers all models

    Base.metadata.create_all(bind=bind or engine)
