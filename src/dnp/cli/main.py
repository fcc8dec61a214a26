"""Typer CLI entry point."""

from __future__ import annotations

import signal
import threading
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo

import orjson
import typer

from dnp.config import MissingEnvironmentError, Settings
from dnp.db.client import db_cursor, ensure_schema
from dnp.db.store import InMemoryDocumentStore, PostgresDocumentStore
from dnp.geo.boundaries import filter_features, load_boundary
from dnp.ingestion.dates import ParseError, is_relevant, parse_date_range
from dnp.ingestion.runner import load_notices, run_ingestion
from dnp.notifications.push import HttpPushSender
from dnp.notifications.runner import MatchingPipeline
from dnp.utils.logging import configure_logging, get_logger
from dnp.utils.time import parse_iso_date


app = typer.Typer(help="Disruption notice pipeline CLI")
ingest_app = typer.Typer(help="Ingestion commands")
geo_app = typer.Typer(help="Geometry utilities")
notify_app = typer.Typer(help="Notification matching commands")
db_app = typer.Typer(help="Database utilities")

app.add_typer(ingest_app, name="ingest")
app.add_typer(geo_app, name="geo")
app.add_typer(notify_app, name="notify")
app.add_typer(db_app, name="db")

logger = get_logger(__name__)

NOTIFY_REQUIRED_KEYS = ("PUSH_API_URL", "PUSH_API_KEY")


def _fail(message: str) -> None:
    typer.echo(message, err=True)
    raise typer.Exit(1)


def _require_database(settings: Settings) -> None:
    try:
        settings.get_database_url()
    except ValueError as exc:
        _fail(str(exc))


@app.callback()
def main() -> None:
    """Initialize logging for all commands."""
    settings = Settings()
    configure_logging(settings.log_level)


@ingest_app.command("run")
def ingest_run(
    input_path: Path = typer.Option(..., "--input", help="JSON array of scraped notices"),
    boundary_path: Optional[Path] = typer.Option(
        None, "--boundary", help="Boundary GeoJSON (overrides BOUNDARY_PATH)"
    ),
    dry_run: bool = typer.Option(False, help="Do not write to DB"),
) -> None:
    """Gate scraped notices and store the accepted ones."""
    settings = Settings()
    boundary_file = boundary_path or (Path(settings.boundary_path) if settings.boundary_path else None)
    boundary = load_boundary(boundary_file) if boundary_file else None

    if dry_run:
        store = InMemoryDocumentStore()
    else:
        _require_database(settings)
        store = PostgresDocumentStore(settings)

    summary = run_ingestion(
        load_notices(input_path),
        store,
        settings=settings,
        boundary=boundary,
        dry_run=dry_run,
    )
    typer.echo(
        f"fetched={summary.fetched} accepted={summary.accepted} rejected={summary.rejected}"
    )


@ingest_app.command("relevance")
def ingest_relevance(
    text: str = typer.Argument(..., help="Bulgarian date text, e.g. 15-19.03.2026"),
    on: Optional[str] = typer.Option(None, help="Reference date (YYYY-MM-DD), default today"),
) -> None:
    """Parse date text and report whether it covers the reference day."""
    reference = parse_iso_date(on) if on else None
    if on and reference is None:
        _fail(f"Invalid reference date: {on}")

    try:
        date_range = parse_date_range(text)
    except ParseError as exc:
        _fail(f"Unparsable date text: {exc}")
        return

    relevant = is_relevant(date_range, reference, ZoneInfo(Settings().timezone))
    typer.echo(
        f"start={date_range.start.isoformat()} end={date_range.end.isoformat()} "
        f"relevant={str(relevant).lower()}"
    )


@geo_app.command("filter")
def geo_filter(
    input_path: Path = typer.Option(..., "--input", help="FeatureCollection to filter"),
    boundary_path: Path = typer.Option(..., "--boundary", help="Boundary FeatureCollection"),
    output_path: Optional[Path] = typer.Option(None, "--output", help="Write result here"),
) -> None:
    """Keep only the features that fall inside the boundary."""
    features = orjson.loads(input_path.read_bytes())
    result = filter_features(features, load_boundary(boundary_path))
    if result is None:
        typer.echo("No features inside boundary", err=True)
        raise typer.Exit(2)

    encoded = orjson.dumps(result, option=orjson.OPT_INDENT_2)
    if output_path:
        output_path.write_bytes(encoded)
    else:
        typer.echo(encoded.decode("utf-8"))


@notify_app.command("run")
def notify_run(
    dry_run: bool = typer.Option(False, help="Match only; no writes, no pushes"),
    max_workers: Optional[int] = typer.Option(
        None, help="Parallel messages (default NOTIFY_MAX_WORKERS)"
    ),
    limit: Optional[int] = typer.Option(None, help="Max messages to process"),
) -> None:
    """Match unprocessed messages with user interests and send notifications."""
    settings = Settings()
    try:
        settings.require(NOTIFY_REQUIRED_KEYS)
    except MissingEnvironmentError as exc:
        _fail(str(exc))
    _require_database(settings)

    cancel_event = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: cancel_event.set())

    pipeline = MatchingPipeline(PostgresDocumentStore(settings), HttpPushSender(settings), settings)
    summary = pipeline.run(
        dry_run=dry_run,
        max_workers=max_workers,
        limit=limit,
        cancel_event=cancel_event,
    )
    typer.echo(
        f"selected={summary.selected} notified={summary.count('notified')} "
        f"skipped={summary.count('skipped')} failed={summary.count('failed')} "
        f"pushes_sent={summary.pushes_sent} pushes_failed={summary.pushes_failed}"
    )


@db_app.command("check")
def db_check() -> None:
    """Check database connectivity."""
    try:
        with db_cursor() as cursor:
            cursor.execute("select 1")
            logger.info("db.check.ok")
    except Exception as exc:
        logger.error("db.check.failed: %s", exc)
        typer.echo(f"Database check failed: {exc}", err=True)
        raise typer.Exit(1)


@db_app.command("init")
def db_init() -> None:
    """Create the documents table."""
    ensure_schema()
    typer.echo("Schema ready")


if __name__ == "__main__":
    app()
