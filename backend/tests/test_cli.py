"""Tests for SeaWatch CLI commands."""
from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
import typer
from rich.console import Console
from typer.testing import CliRunner

from seawatch.cli import _parse_duration, app
from seawatch.config import settings
from seawatch.modules.ingestion import IngestionPipeline, SessionCounters
from seawatch.modules.normalize import utcnow
from seawatch.schemas.feed import FeedSessionResult
from seawatch.schemas.position import PositionReport


runner = CliRunner()


@pytest.fixture(autouse=True)
def wide_console():
    """Keep Rich tables from truncating cells in the captured output."""
    with patch("seawatch.cli.console", Console(width=200)):
        yield


# ---------------------------------------------------------------------------
# _parse_duration
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("text,seconds", [
    ("30s", 30),
    ("5m", 300),
    ("1h", 3600),
    ("0", 0),
    ("90", 90),
    (" 2M ", 120),
])
def test_parse_duration(text, seconds):
    assert _parse_duration(text) == seconds


@pytest.mark.parametrize("text", ["soon", "", "m", "5x"])
def test_parse_duration_rejects_garbage(text):
    with pytest.raises(typer.BadParameter):
        _parse_duration(text)


@patch("seawatch.database.init_db")
def test_stream_bad_duration_is_usage_error(mock_init):
    with patch.object(settings, "AISSTREAM_API_KEY", "test-key"):
        result = runner.invoke(app, ["stream", "--global", "--duration", "soon"])
    assert result.exit_code == 2
    mock_init.assert_not_called()


# ---------------------------------------------------------------------------
# stream
# ---------------------------------------------------------------------------


@patch("seawatch.database.init_db")
def test_stream_without_credential_fails(mock_init):
    with patch.object(settings, "AISSTREAM_API_KEY", None):
        result = runner.invoke(app, ["stream", "--global", "--duration", "1s"])
    assert result.exit_code == 1
    assert "AISSTREAM_API_KEY not configured" in result.output


@patch("seawatch.database.init_db")
def test_stream_prints_session_summary(mock_init):
    session = FeedSessionResult(
        processed_count=12, error_count=1, ignored_count=3, credential_present=True, duration_seconds=30.0,
    )
    with patch.object(settings, "AISSTREAM_API_KEY", "test-key"), \
            patch("seawatch.modules.feed_client.run_feed_session", new=AsyncMock(return_value=session)) as mock_run:
        result = runner.invoke(app, ["stream", "--global", "--duration", "30s"])

    assert result.exit_code == 0
    assert "Feed session" in result.output
    assert "12" in result.output
    assert "30.0" in result.output
    kwargs = mock_run.call_args.kwargs
    assert kwargs["duration_seconds"] == 30
    assert kwargs["bounding_boxes"] == []


@patch("seawatch.database.init_db")
def test_stream_reports_incomplete_session(mock_init):
    session = FeedSessionResult(credential_present=True, incomplete=True, error="connection refused")
    with patch.object(settings, "AISSTREAM_API_KEY", "test-key"), \
            patch("seawatch.modules.feed_client.run_feed_session", new=AsyncMock(return_value=session)):
        result = runner.invoke(app, ["stream", "--global"])

    assert result.exit_code == 0
    assert "Session ended early: connection refused" in result.output


@patch("seawatch.database.init_db")
def test_stream_uses_regions_file(mock_init, tmp_path):
    regions = tmp_path / "regions.yaml"
    regions.write_text("regions:\n  baltic:\n    - [53, 9]\n    - [66, 30]\n")
    with patch.object(settings, "AISSTREAM_API_KEY", "test-key"), \
            patch("seawatch.modules.feed_client.run_feed_session",
                  new=AsyncMock(return_value=FeedSessionResult(credential_present=True))) as mock_run:
        result = runner.invoke(app, ["stream", "--regions", str(regions)])

    assert result.exit_code == 0
    assert mock_run.call_args.kwargs["bounding_boxes"] == [[[53.0, 9.0], [66.0, 30.0]]]


# ---------------------------------------------------------------------------
# positions / status
# ---------------------------------------------------------------------------


def _ingest(store, mmsi, lat, speed, minutes_ago):
    ts = utcnow() - timedelta(minutes=minutes_ago)
    IngestionPipeline(store, clock=lambda: ts).process(
        PositionReport(mmsi=mmsi, latitude=lat, longitude=20.0, speed_knots=speed), SessionCounters(),
    )


def test_positions_table(store, session_factory):
    _ingest(store, "123456789", 10.0, 20.0, 5)
    _ingest(store, "123456789", 10.1, 3.0, 1)
    _ingest(store, "987654321", 50.0, 18.0, 45)

    with patch("seawatch.database.SessionLocal", session_factory):
        result = runner.invoke(app, ["positions", "--hours", "6"])

    assert result.exit_code == 0
    assert "2 vessels, live" in result.output
    assert "123456789" in result.output
    assert "10.1000" in result.output
    assert "fast" in result.output
    assert "slow" in result.output


def test_positions_empty_is_offline(session_factory):
    with patch("seawatch.database.SessionLocal", session_factory):
        result = runner.invoke(app, ["positions"])
    assert result.exit_code == 0
    assert "offline" in result.output


def test_status(store, session_factory):
    _ingest(store, "123456789", 10.0, 8.0, 1)
    with patch("seawatch.database.SessionLocal", session_factory), \
            patch.object(settings, "AISSTREAM_API_KEY", None):
        result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "Vessels: 1" in result.output
    assert "Positions: 1" in result.output
    assert "missing" in result.output


@patch("seawatch.database.init_db")
def test_init(mock_init):
    result = runner.invoke(app, ["init"])
    assert result.exit_code == 0
    mock_init.assert_called_once()
    assert "Database ready" in result.output


@patch("seawatch.database.init_db", side_effect=Exception("database locked"))
def test_init_failure(mock_init):
    result = runner.invoke(app, ["init"])
    assert result.exit_code == 1
    assert "database locked" in result.output
