"""Replay mode: feed a saved inbound-event JSON file through the pipeline locally."""

import asyncio
import json
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.table import Table

from src.agents.enrichment import EnrichmentEngine
from src.db import init_db
from src.ingest.pipeline import IngestionPipeline
from src.mail_provider.mock import MockMailProvider
from src.notify.broadcaster import Broadcaster
from src.webhook.models import InboundEvent

from .shared import console, logger


def _load_events(path: Path) -> list[dict]:
    data = json.loads(path.read_text(encoding="utf-8"))
    return data if isinstance(data, list) else [data]


async def _replay(events: list[dict], enrich: bool) -> list[dict]:
    broadcaster = Broadcaster()
    pipeline = IngestionPipeline(
        provider=MockMailProvider(),
        broadcaster=broadcaster,
        enrichment=EnrichmentEngine(broadcaster=broadcaster) if enrich else None,
    )
    rows = []
    for index, raw in enumerate(events):
        try:
            result = await pipeline.ingest(InboundEvent.model_validate(raw))
        except ValidationError as e:
            logger.warning("replay.invalid_event", index=index, error=str(e))
            rows.append({"index": index, "error": "invalid payload"})
            continue
        rows.append({"index": index, **result.to_response()})
    await pipeline.drain()
    return rows


def replay(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file: one event or a list of events"),
    enrich: bool = typer.Option(False, "--enrich", help="Also run AI classification and extraction"),
) -> None:
    """Ingest events from a file without signature verification (developer tool)."""
    init_db()
    log = logger.bind(command="replay", path=str(path))
    log.info("replay.start")
    try:
        events = _load_events(path)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON in {path}: {e}[/red]")
        raise typer.Exit(1) from e

    rows = asyncio.run(_replay(events, enrich))

    table = Table(title=f"Replayed {len(rows)} event(s)")
    table.add_column("#", justify="right")
    table.add_column("Thread", style="cyan")
    table.add_column("Email", style="green")
    table.add_column("Duplicate", justify="center")
    for row in rows:
        if "error" in row:
            table.add_row(str(row["index"]), f"[red]{row['error']}[/red]", "", "")
            continue
        table.add_row(
            str(row["index"]),
            row.get("threadId", "-"),
            row.get("emailId", "-"),
            "yes" if row.get("duplicate") else "",
        )
    console.print(table)
    log.info("replay.done", events=len(rows))
