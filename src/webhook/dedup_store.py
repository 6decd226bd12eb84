"""Persistent replay guard for webhook deliveries.

The provider retries a delivery with the same delivery id (``svix-id``)
until it gets a 2xx. Seen ids are remembered for a TTL and persisted to a
JSON file so a restart does not reopen the window. Message ids currently
being ingested are tracked in memory only.
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

from src.utils.logger import get_logger

logger = get_logger("inbox_ingest.webhook.dedup_store")


class DedupStore:
    """Async-safe store for delivery and in-flight message deduplication."""

    def __init__(
        self,
        store_path: str | Path | None,
        delivery_ttl_seconds: int = 86400,
    ):
        self._store_path = Path(store_path) if store_path else None
        self._ttl_seconds = delivery_ttl_seconds
        self._lock = asyncio.Lock()
        self._seen_deliveries: dict[str, str] = {}  # delivery_id -> ISO timestamp
        self._processing_message_ids: set[str] = set()  # in-flight only (not persisted)
        self._load()

    def _load(self) -> None:
        """Load state from disk. No-op if file missing or invalid."""
        if self._store_path is None or not self._store_path.exists():
            return
        try:
            data = json.loads(self._store_path.read_text(encoding="utf-8"))
            self._seen_deliveries = dict(data.get("seen_deliveries", {}))
        except Exception as e:
            logger.warning(
                "dedup_store.load_error",
                path=str(self._store_path),
                error=str(e),
            )
        self._prune(datetime.now(timezone.utc))

    def _save(self) -> None:
        """Write state to disk. Caller should hold _lock."""
        if self._store_path is None:
            return
        try:
            self._store_path.parent.mkdir(parents=True, exist_ok=True)
            self._store_path.write_text(
                json.dumps({"seen_deliveries": self._seen_deliveries}, indent=2),
                encoding="utf-8",
            )
        except Exception as e:
            logger.error(
                "dedup_store.save_error",
                path=str(self._store_path),
                error=str(e),
            )

    def _prune(self, now: datetime) -> None:
        """Drop deliveries older than the TTL (no lock; caller must hold lock or be in __init__)."""
        cutoff = now - timedelta(seconds=self._ttl_seconds)
        expired = []
        for delivery_id, ts_str in self._seen_deliveries.items():
            try:
                seen_at = datetime.fromisoformat(ts_str.replace("Z", "+00:00"))
            except ValueError:
                expired.append(delivery_id)
                continue
            if seen_at < cutoff:
                expired.append(delivery_id)
        for delivery_id in expired:
            del self._seen_deliveries[delivery_id]

    @property
    def seen_count(self) -> int:
        """Delivery ids currently remembered (expired entries drop on the next write)."""
        return len(self._seen_deliveries)

    @property
    def processing_count(self) -> int:
        return len(self._processing_message_ids)

    async def mark_seen(self, delivery_id: str) -> bool:
        """Record a delivery id. Returns True if newly added, False if already seen."""
        if not delivery_id:
            return True
        async with self._lock:
            now = datetime.now(timezone.utc)
            self._prune(now)
            if delivery_id in self._seen_deliveries:
                return False
            self._seen_deliveries[delivery_id] = now.isoformat().replace("+00:00", "Z")
            self._save()
            return True

    async def forget(self, delivery_id: str) -> None:
        """Remove a delivery id so the provider's retry is processed (used when ingestion failed)."""
        async with self._lock:
            if self._seen_deliveries.pop(delivery_id, None) is not None:
                self._save()
                logger.debug("dedup_store.forget", delivery_id=delivery_id)

    async def add_processing(self, message_id: str) -> bool:
        """Mark message as in-flight. Returns False if it already was."""
        async with self._lock:
            if message_id in self._processing_message_ids:
                return False
            self._processing_message_ids.add(message_id)
            return True

    async def remove_processing(self, message_id: str) -> None:
        """Remove message from in-flight set."""
        async with self._lock:
            self._processing_message_ids.discard(message_id)
