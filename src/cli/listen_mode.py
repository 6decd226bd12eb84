"""Listen mode: print a running server's event stream, reconnecting with backoff."""

import asyncio

import typer

from src.config import SSE_RECONNECT_BASE_DELAY, SSE_RECONNECT_MAX_ATTEMPTS, WEBHOOK_PORT
from src.notify.client import EventStreamClient, ReconnectPolicy

from .shared import console, logger, print_event


def listen(
    url: str = typer.Option(
        f"http://localhost:{WEBHOOK_PORT}/events", "--url", "-u", help="Event stream URL"
    ),
    base_delay: float = typer.Option(SSE_RECONNECT_BASE_DELAY, "--base-delay", help="First reconnect delay (seconds)"),
    max_attempts: int = typer.Option(SSE_RECONNECT_MAX_ATTEMPTS, "--max-attempts", help="Reconnect attempts before giving up"),
) -> None:
    """Connect to GET /events and print new_email / thread_updated / label_changed events."""
    log = logger.bind(command="listen", url=url)
    log.info("listen.start")
    client = EventStreamClient(
        url,
        on_event=print_event,
        policy=ReconnectPolicy(base_delay=base_delay, max_attempts=max_attempts),
        on_connect=lambda: console.print(f"[green]Connected to {url}[/green]"),
    )
    try:
        asyncio.run(client.run())
    except KeyboardInterrupt:
        client.stop()
        console.print("\n[dim]Stopped.[/dim]")
        return
    console.print(f"[red]Gave up after {max_attempts} reconnect attempts.[/red]")
    raise typer.Exit(1)
