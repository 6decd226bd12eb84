"""Tests for webhook deduplication store."""

import asyncio
import json
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

import support  # noqa: F401

from src.webhook.dedup_store import DedupStore


class TestDedupStore(unittest.TestCase):
    """Tests for DedupStore persistence and locking."""

    def test_seen_persistence(self):
        """Marking a delivery persists and survives a new instance."""
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "dedup.json"
            store = DedupStore(store_path=path)

            async def run():
                self.assertEqual(store.seen_count, 0)
                self.assertTrue(await store.mark_seen("msg_1"))
                self.assertFalse(await store.mark_seen("msg_1"))
                self.assertEqual(store.seen_count, 1)
                store2 = DedupStore(store_path=path)
                self.assertEqual(store2.seen_count, 1)
                self.assertFalse(await store2.mark_seen("msg_1"))

            asyncio.run(run())

    def test_expired_entries_pruned_on_load(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "dedup.json"
            old = (datetime.now(timezone.utc) - timedelta(hours=2)).isoformat()
            fresh = datetime.now(timezone.utc).isoformat()
            path.write_text(json.dumps({"seen_deliveries": {"old": old, "fresh": fresh, "bad": "yesterday"}}))
            store = DedupStore(store_path=path, delivery_ttl_seconds=3600)
            self.assertEqual(store.seen_count, 1)

            async def run():
                self.assertTrue(await store.mark_seen("old"))
                self.assertTrue(await store.mark_seen("bad"))
                self.assertFalse(await store.mark_seen("fresh"))

            asyncio.run(run())

    def test_ttl_expiry(self):
        """A delivery id is accepted again once its TTL has passed."""
        store = DedupStore(store_path=None, delivery_ttl_seconds=1)

        async def run():
            self.assertTrue(await store.mark_seen("msg_1"))
            self.assertFalse(await store.mark_seen("msg_1"))
            await asyncio.sleep(1.1)
            self.assertTrue(await store.mark_seen("msg_1"))

        asyncio.run(run())

    def test_forget_reopens_delivery(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "dedup.json"
            store = DedupStore(store_path=path)

            async def run():
                await store.mark_seen("msg_1")
                await store.forget("msg_1")
                self.assertEqual(store.seen_count, 0)
                self.assertNotIn("msg_1", json.loads(path.read_text())["seen_deliveries"])
                # Unknown ids are ignored
                await store.forget("never-seen")

            asyncio.run(run())

    def test_unreadable_file_starts_empty(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "dedup.json"
            path.write_text("{not json")
            store = DedupStore(store_path=path)

            async def run():
                self.assertTrue(await store.mark_seen("msg_1"))

            self.assertEqual(store.seen_count, 0)
            asyncio.run(run())

    def test_processing_in_flight(self):
        """Processing set is in-memory only (not persisted)."""
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "dedup.json"
            store = DedupStore(store_path=path)

            async def run():
                self.assertTrue(await store.add_processing("<m1@x.com>"))
                self.assertFalse(await store.add_processing("<m1@x.com>"))
                self.assertEqual(store.processing_count, 1)
                self.assertEqual(DedupStore(store_path=path).processing_count, 0)
                await store.remove_processing("<m1@x.com>")
                self.assertEqual(store.processing_count, 0)
                self.assertTrue(await store.add_processing("<m1@x.com>"))

            asyncio.run(run())

    def test_mark_seen_atomic(self):
        """Only one caller gets True from mark_seen when called concurrently."""
        store = DedupStore(store_path=None)
        results = []

        async def claim():
            results.append(await store.mark_seen("race-delivery"))

        async def run():
            await asyncio.gather(claim(), claim(), claim())

        asyncio.run(run())
        self.assertEqual(sum(results), 1)


if __name__ == "__main__":
    unittest.main()
