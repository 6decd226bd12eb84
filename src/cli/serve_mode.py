"""Serve mode: run the FastAPI ingestion server under uvicorn."""

import sys

import typer
import uvicorn

from src.config import RESEND_API_KEY, WEBHOOK_PORT, WEBHOOK_SECRET
from src.db import init_db
from src.webhook.server import create_app

from .shared import console, logger


def serve(
    port: int = typer.Option(WEBHOOK_PORT, "--port", "-p", help="Port for the server"),
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Bind host"),
    no_enrich: bool = typer.Option(False, "--no-enrich", help="Skip AI classification and knowledge extraction"),
) -> None:
    """Start the inbound webhook receiver and live event stream."""
    init_db()
    log = logger.bind(command="serve", port=port)
    log.info("serve.start")

    if not WEBHOOK_SECRET:
        console.print("[red]WEBHOOK_SECRET is not set; every delivery would be rejected.[/red]")
        log.warning("serve.missing_env", missing=["WEBHOOK_SECRET"])
        raise typer.Exit(1)
    if not RESEND_API_KEY:
        console.print("[yellow]RESEND_API_KEY not set: bodies come from the payload only and sending is disabled.[/yellow]")

    app = create_app(enrich=not no_enrich)

    console.print(f"[green]Starting server on http://{host}:{port}[/green]")
    console.print("[dim]Endpoints: POST /webhooks/inbound, GET /events, GET /health, /threads, /knowledge[/dim]")
    try:
        uvicorn.run(
            app,
            host=host,
            port=port,
            log_level="info",
            timeout_graceful_shutdown=15,
        )
    except KeyboardInterrupt:
        console.print("\n[dim]Shutting down...[/dim]")
        sys.exit(0)
