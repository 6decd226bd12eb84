"""Shared CLI helpers: console, logger, event formatting."""

from rich.console import Console

from src.notify.broadcaster import StreamEvent
from src.utils.logger import get_logger

console = Console()
logger = get_logger("inbox_ingest.cli")

_EVENT_STYLES = {
    "new_email": "green",
    "thread_updated": "cyan",
    "label_changed": "magenta",
    "ping": "dim",
}


def print_event(event: StreamEvent) -> None:
    """One line per stream event."""
    style = _EVENT_STYLES.get(event.type, "white")
    data = event.data
    parts = [f"[{style}]{event.type}[/{style}]"]
    if data is not None:
        if data.thread_id:
            parts.append(f"thread={data.thread_id}")
        if data.email_id:
            parts.append(f"email={data.email_id}")
        if data.label_id:
            parts.append(f"label={data.label_id}")
    console.print("  ".join(parts))
