"""Tests for contact enrichment: output parsing, profile updates, facts and the contact routes.

The LLM is replaced with pydantic-ai FunctionModel via agent.override().
"""

import asyncio
import json
import unittest
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient
from pydantic_ai.messages import ModelResponse, TextPart, UserPromptPart
from pydantic_ai.models.function import FunctionModel

from support import SECRET, get_session, normalized, reset_db, store

from src.agents.contact_enricher import enrich_contact, parse_enrichment
from src.agents.registry import get_agent
from src.db.base import utcnow
from src.db.repositories import contact_repo, email_repo
from src.mail_provider.mock import MockMailProvider
from src.webhook.dedup_store import DedupStore
from src.webhook.server import create_app

ENRICHMENT_JSON = json.dumps(
    {
        "updates": {"company": "TechCorp GmbH", "role": "CTO", "summary": "Evaluating the API for a Q3 rollout"},
        "knowledge": [
            {"field": "interest", "value": "Webhook reliability", "confidence": 85},
            {"field": "language", "value": "de", "confidence": 40},
        ],
    }
)


def replying(text: str, prompts: list | None = None) -> FunctionModel:
    def respond(messages, info):
        if prompts is not None:
            for message in messages:
                for part in message.parts:
                    if isinstance(part, UserPromptPart) and isinstance(part.content, str):
                        prompts.append(part.content)
        return ModelResponse(parts=[TextPart(content=text)])

    return FunctionModel(respond)


def failing() -> FunctionModel:
    def respond(messages, info):
        raise RuntimeError("upstream timeout")

    return FunctionModel(respond)


def _seed_conversation() -> str:
    store(normalized("<e1@x.com>", from_="Alice <a@x.com>", subject="API pricing", text="Which plan fits us?"))
    store(
        normalized("<e2@me.com>", from_="me@me.com", to=["a@x.com"], subject="Re: API pricing", text="The team plan."),
        direction="outbound",
    )
    store(normalized("<e3@y.com>", from_="other@y.com", subject="Unrelated", text="Not about Alice"))
    return contact_repo.get_contact_by_email("a@x.com")["id"]


class TestParseEnrichment(unittest.TestCase):
    def test_updates_and_facts_filtered(self):
        result = parse_enrichment("Here you go:\n" + ENRICHMENT_JSON)
        self.assertEqual(result.updates["company"], "TechCorp GmbH")
        self.assertEqual([f.field for f in result.knowledge], ["interest"])

    def test_blank_updates_and_invalid_facts_dropped(self):
        text = json.dumps(
            {
                "updates": {"name": "  ", "role": "Buyer", "favourite_colour": "blue"},
                "knowledge": [{"field": "phone"}, "junk", {"field": "phone", "value": "+49 30 1234", "confidence": 90}],
            }
        )
        result = parse_enrichment(text)
        self.assertEqual(result.updates, {"role": "Buyer"})
        self.assertEqual([(f.field, f.value) for f in result.knowledge], [("phone", "+49 30 1234")])

    def test_malformed_output(self):
        for text in ("", "null", "no json here", '{"updates": ["not", "a", "dict"]}'):
            result = parse_enrichment(text)
            self.assertEqual(result.updates, {}, text)
            self.assertEqual(result.knowledge, [], text)


class TestEnrichContact(unittest.TestCase):
    def setUp(self):
        reset_db()

    def test_recent_emails_include_both_directions(self):
        _seed_conversation()
        emails = email_repo.recent_for_address("A@x.com", limit=10)
        self.assertEqual(sorted(e["subject"] for e in emails), ["API pricing", "Re: API pricing"])
        self.assertEqual(len(email_repo.recent_for_address("a@x.com", limit=1)), 1)

    def test_applies_updates_and_confident_facts(self):
        contact_id = _seed_conversation()
        prompts = []
        with get_agent("contact_enricher").override(model=replying(ENRICHMENT_JSON, prompts)):
            result = asyncio.run(enrich_contact(contact_id))

        self.assertEqual(result.emails_considered, 2)
        self.assertEqual(result.updates["role"], "CTO")
        contact = contact_repo.get_contact(contact_id)
        self.assertEqual(contact["company"], "TechCorp GmbH")
        self.assertEqual(contact["summary"], "Evaluating the API for a Q3 rollout")
        # The known name is kept when the agent has no better one
        self.assertEqual(contact["name"], "Alice")
        facts = contact_repo.list_contact_knowledge(contact_id)
        self.assertEqual([(f["field"], f["confidence"]) for f in facts], [("interest", 85)])

        prompt = "\n".join(prompts)
        self.assertIn("Email: a@x.com", prompt)
        self.assertIn("[outbound] Subject: Re: API pricing", prompt)
        self.assertNotIn("Unrelated", prompt)

    def test_unknown_contact(self):
        self.assertIsNone(asyncio.run(enrich_contact("no-such-contact")))

    def test_contact_without_emails_skips_call(self):
        with get_session() as session:
            contact_repo.upsert_contact(session, "lonely@x.com", "inbound", utcnow())
        contact_id = contact_repo.get_contact_by_email("lonely@x.com")["id"]
        with get_agent("contact_enricher").override(model=failing()):
            result = asyncio.run(enrich_contact(contact_id))
        self.assertEqual(result.emails_considered, 0)
        self.assertEqual(result.updates, {})

    def test_failure_changes_nothing(self):
        contact_id = _seed_conversation()
        with get_agent("contact_enricher").override(model=failing()):
            result = asyncio.run(enrich_contact(contact_id))
        self.assertEqual((result.updates, result.knowledge), ({}, []))
        self.assertIsNone(contact_repo.get_contact(contact_id)["company"])
        self.assertEqual(contact_repo.list_contact_knowledge(contact_id), [])

    def test_update_profile_rejects_unknown_field(self):
        contact_id = _seed_conversation()
        with get_session() as session:
            with self.assertRaises(ValueError):
                contact_repo.update_profile(session, contact_id, email="x@y.com")


class TestContactRoutes(unittest.TestCase):
    def setUp(self):
        reset_db()
        app = create_app(
            provider=MockMailProvider(),
            secret=SECRET,
            dedup_store=DedupStore(store_path=None),
            enrich=False,
        )
        self.client = TestClient(app)
        self.client.__enter__()

    def tearDown(self):
        self.client.__exit__(None, None, None)

    def test_unknown_contact_404(self):
        self.assertEqual(self.client.get("/contacts/nope").status_code, 404)
        self.assertEqual(self.client.post("/contacts/nope/enrich").status_code, 404)

    def test_enrich_returns_updated_profile(self):
        contact_id = _seed_conversation()
        # The app runs on the client's portal thread, which model overrides do not reach
        with patch("src.agents.contact_enricher.run_text_agent", AsyncMock(return_value=ENRICHMENT_JSON)):
            resp = self.client.post(f"/contacts/{contact_id}/enrich")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["contact"]["role"], "CTO")
        self.assertEqual(body["appliedUpdates"]["company"], "TechCorp GmbH")
        self.assertEqual([k["field"] for k in body["addedKnowledge"]], ["interest"])
        self.assertEqual([k["value"] for k in body["knowledge"]], ["Webhook reliability"])
        self.assertEqual(body["emailsConsidered"], 2)

        profile = self.client.get(f"/contacts/{contact_id}").json()
        self.assertEqual(profile["contact"]["summary"], "Evaluating the API for a Q3 rollout")


if __name__ == "__main__":
    unittest.main()
