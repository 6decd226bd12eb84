"""Tests for log redaction of signing material and credentials."""

import unittest

import support  # noqa: F401

from src.utils.logger import REDACTED, redact_secrets


class TestRedactSecrets(unittest.TestCase):
    def test_sensitive_keys_masked(self):
        event = redact_secrets(None, "info", {"event": "x", "webhook_secret": "whsec_abc", "Authorization": "Bearer t"})
        self.assertEqual(event["webhook_secret"], REDACTED)
        self.assertEqual(event["Authorization"], REDACTED)
        self.assertEqual(event["event"], "x")

    def test_headers_mapping_masked(self):
        event = redact_secrets(
            None,
            "info",
            {"headers": {"svix-id": "msg_1", "svix-signature": "v1,abc", "content-type": "application/json"}},
        )
        self.assertEqual(event["headers"]["svix-signature"], REDACTED)
        self.assertEqual(event["headers"]["svix-id"], "msg_1")


if __name__ == "__main__":
    unittest.main()
