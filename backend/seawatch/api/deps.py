"""Process-wide collaborators shared by the HTTP routes."""
from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address

from seawatch.database import SessionLocal
from seawatch.modules.notifier import ChangeNotifier
from seawatch.modules.store import LiveStateStore, SqlLiveStateStore

# One notifier per process: every store write and every realtime channel share it
notifier = ChangeNotifier()

limiter = Limiter(key_func=get_remote_address, default_limits=["60/minute"])


def get_notifier() -> ChangeNotifier:
    return notifier


def get_store() -> LiveStateStore:
    return SqlLiveStateStore(SessionLocal, notifier)
