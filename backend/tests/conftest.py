"""Shared test fixtures: in-memory store, notifier, and API client."""
import os

# Keep the app's module-level engine off disk during tests
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from unittest.mock import patch
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from seawatch.database import init_db, make_engine
from seawatch.modules.notifier import ChangeNotifier
from seawatch.modules.store import SqlLiveStateStore


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test, FKs enforced."""
    engine = make_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def notifier():
    return ChangeNotifier()


@pytest.fixture
def store(session_factory, notifier):
    return SqlLiveStateStore(session_factory, notifier)


@pytest.fixture
def api_client(store, notifier):
    """TestClient wired to the in-memory store and a per-test notifier."""
    from seawatch.api.deps import get_notifier, get_store, limiter
    from seawatch.main import app

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_notifier] = lambda: notifier
    limiter.reset()
    with patch("seawatch.api.deps.notifier", notifier):
        with TestClient(app) as client:
            yield client
    app.dependency_overrides.clear()
