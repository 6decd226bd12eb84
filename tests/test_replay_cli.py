"""Tests for the replay command against a recorded event file."""

import tempfile
import unittest
from pathlib import Path

from sqlalchemy import func, select
from typer.testing import CliRunner

from support import ROOT, get_session, reset_db

from src.cli import app
from src.db.models.thread import Email, Thread

FIXTURE = ROOT / "tests" / "fixtures" / "inbound_events.json"


class TestReplayCommand(unittest.TestCase):
    def setUp(self):
        reset_db()
        self.runner = CliRunner()

    def test_replay_threads_and_deduplicates(self):
        result = self.runner.invoke(app, ["replay", str(FIXTURE)])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Replayed 4 event(s)", result.output)
        with get_session() as session:
            self.assertEqual(session.scalar(select(func.count()).select_from(Email)), 2)
            self.assertEqual(session.scalar(select(func.count()).select_from(Thread)), 1)
            thread = session.scalars(select(Thread)).one()
            self.assertEqual(thread.snippet, "Thanks Dana, does the increase apply to standing orders?")

    def test_invalid_json_exits_1(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "broken.json"
            path.write_text("[{", encoding="utf-8")
            result = self.runner.invoke(app, ["replay", str(path)])
        self.assertEqual(result.exit_code, 1)


if __name__ == "__main__":
    unittest.main()
