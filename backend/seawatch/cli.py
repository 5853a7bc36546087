"""SeaWatch CLI: live AIS ingestion and latest-position views.

Commands:
  init       create database tables
  stream     run one bounded aisstream.io ingestion session
  positions  latest position per vessel in a recent window
  status     store health and live/offline state
"""
from __future__ import annotations

import asyncio
from datetime import timedelta
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table


app = typer.Typer(
    name="seawatch",
    help="Live vessel-position ingestion from aisstream.io.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("init")
def init():
    """Create the database tables."""
    from seawatch.database import init_db

    try:
        init_db()
    except Exception as e:
        console.print(f"[red]Database setup failed: {e}[/red]")
        raise typer.Exit(1)
    console.print("[green]Database ready.[/green]")


@app.command("stream")
def stream(
    duration: str = typer.Option("5m", "--duration", help="Session length (e.g. 30s, 5m, 1h; 0 = until the feed closes)"),
    regions: Optional[Path] = typer.Option(None, "--regions", help="Regions YAML with bounding boxes"),
    global_coverage: bool = typer.Option(False, "--global", help="Ignore regions and subscribe globally"),
):
    """Stream position reports into the database for a bounded session."""
    from seawatch.config import settings
    from seawatch.database import SessionLocal, init_db
    from seawatch.exceptions import FeedConfigurationError
    from seawatch.modules.feed_client import load_bounding_boxes, run_feed_session
    from seawatch.modules.ingestion import IngestionPipeline
    from seawatch.modules.store import SqlLiveStateStore

    duration_s = _parse_duration(duration)
    boxes = [] if global_coverage else load_bounding_boxes(regions)

    init_db()
    pipeline = IngestionPipeline(SqlLiveStateStore(SessionLocal))
    try:
        with console.status("[bold]Collecting ship positions..."):
            result = asyncio.run(run_feed_session(
                settings.AISSTREAM_API_KEY,
                pipeline,
                bounding_boxes=boxes,
                duration_seconds=duration_s,
                idle_timeout=settings.AISSTREAM_IDLE_TIMEOUT,
            ))
    except FeedConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Feed session")
    table.add_column("Processed", style="green")
    table.add_column("Errors", style="red")
    table.add_column("Ignored")
    table.add_column("Duration (s)")
    table.add_row(
        str(result.processed_count),
        str(result.error_count),
        str(result.ignored_count),
        f"{result.duration_seconds:.1f}",
    )
    console.print(table)
    if result.error:
        console.print(f"[yellow]Session ended early: {result.error}[/yellow]")


@app.command("positions")
def positions(
    hours: float = typer.Option(6.0, "--hours", help="Look-back window in hours"),
    limit: int = typer.Option(50, "--limit", help="Maximum rows to show"),
):
    """Show the latest position per vessel."""
    from seawatch.database import SessionLocal
    from seawatch.modules.notifier import ChangeNotifier
    from seawatch.modules.projector import LiveViewProjector
    from seawatch.modules.store import SqlLiveStateStore

    projector = LiveViewProjector(
        SqlLiveStateStore(SessionLocal), ChangeNotifier(), window=timedelta(hours=hours)
    )
    projector.reload()
    entries = sorted(projector.snapshot().values(), key=lambda e: e.record.timestamp_utc, reverse=True)
    if not entries:
        console.print(f"[yellow]No positions in the last {hours:g}h, offline[/yellow]")
        return

    table = Table(title=f"Latest positions ({len(entries)} vessels, {projector.status()})")
    table.add_column("MMSI", style="cyan")
    table.add_column("Lat")
    table.add_column("Lon")
    table.add_column("Speed (kn)")
    table.add_column("Bucket")
    table.add_column("Fresh")
    table.add_column("Timestamp (UTC)")
    for e in entries[:limit]:
        rec = e.record
        table.add_row(
            rec.mmsi,
            f"{rec.latitude:.4f}",
            f"{rec.longitude:.4f}",
            f"{rec.speed_knots:.1f}" if rec.speed_knots is not None else "N/A",
            e.speed_bucket.value,
            "[green]yes[/green]" if e.is_fresh else "[dim]no[/dim]",
            rec.timestamp_utc.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)


@app.command("status")
def status():
    """Show store health and data freshness."""
    from sqlalchemy import func

    from seawatch.config import settings
    from seawatch.database import SessionLocal
    from seawatch.models.vessel import Vessel
    from seawatch.models.vessel_position import VesselPosition

    db = SessionLocal()
    try:
        vessel_count = db.query(Vessel).count()
        position_count = db.query(VesselPosition).count()
        latest = db.query(func.max(VesselPosition.timestamp_utc)).scalar()
    except Exception as e:
        console.print(f"[red]Database unavailable: {e}[/red]")
        raise typer.Exit(1)
    finally:
        db.close()

    console.print("[bold]System[/bold]")
    console.print("  Database: [green]OK[/green]")
    console.print(
        f"  Feed credential: {'[green]configured[/green]' if settings.AISSTREAM_API_KEY else '[yellow]missing[/yellow]'}"
    )
    console.print("\n[bold]Data[/bold]")
    console.print(f"  Vessels: {vessel_count}")
    console.print(f"  Positions: {position_count}")
    console.print(f"  Latest position: {latest.isoformat() if latest else '[yellow]none[/yellow]'}")


_DURATION_UNITS = {"s": 1, "m": 60, "h": 3600}


def _parse_duration(s: str) -> int:
    """Seconds from "30s", "5m", "1h" or bare seconds. "0" means until the feed closes."""
    text = s.strip().lower()
    unit = _DURATION_UNITS.get(text[-1:])
    number = text[:-1] if unit else text
    try:
        return int(number) * (unit or 1)
    except ValueError:
        raise typer.BadParameter(f"Invalid duration {s!r} (use e.g. 30s, 5m, 1h)", param_hint="--duration")
