"""Tests for the state mutator: idempotency, participant union, atomic contact upserts."""

import unittest
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

from sqlalchemy import func, select

from support import get_session, normalized, reset_db, store

from src.db.base import as_utc, utcnow
from src.db.models.contact import Contact
from src.db.models.label import INBOX_LABEL
from src.db.models.thread import Email, Thread
from src.db.repositories import contact_repo, thread_repo
from src.ingest.state import DuplicateMessageError, apply_new_message, apply_system_label


def _count(model) -> int:
    with get_session() as session:
        return session.scalar(select(func.count()).select_from(model))


class TestApplyNewMessage(unittest.TestCase):
    def setUp(self):
        reset_db()

    def test_inbound_creates_contact_with_initial_counters(self):
        store(normalized("<m1@x.com>", from_="Alice <a@x.com>"))
        contact = contact_repo.get_contact_by_email("a@x.com")
        self.assertEqual(contact["name"], "Alice")
        self.assertEqual(contact["email_count"], 1)
        self.assertEqual(contact["inbound_count"], 1)
        self.assertEqual(contact["outbound_count"], 0)
        # Recipients of an inbound message are not counted
        self.assertIsNone(contact_repo.get_contact_by_email("b@x.com"))

    def test_second_inbound_increments(self):
        store(normalized("<m1@x.com>", from_="Alice <a@x.com>"))
        store(normalized("<m2@x.com>", from_="a@x.com", subject="Another"))
        contact = contact_repo.get_contact_by_email("a@x.com")
        self.assertEqual(contact["email_count"], 2)
        self.assertEqual(contact["inbound_count"], 2)
        # A message without a display name keeps the known one
        self.assertEqual(contact["name"], "Alice")

    def test_duplicate_message_is_idempotent(self):
        email = normalized("<dup@x.com>")
        store(email)
        with self.assertRaises(DuplicateMessageError) as ctx:
            store(normalized("<dup@x.com>", subject="Different subject entirely"))
        self.assertEqual(ctx.exception.message_id, "<dup@x.com>")
        self.assertEqual(_count(Email), 1)
        # The rolled-back attempt leaves no extra thread behind
        self.assertEqual(_count(Thread), 1)
        self.assertEqual(contact_repo.get_contact_by_email("a@x.com")["email_count"], 1)

    def test_duplicate_provider_id_without_message_id(self):
        email = normalized("<unused@x.com>").model_copy(update={"message_id": None})
        with get_session() as session:
            thread_id = thread_repo.create_thread(session, email.subject, email.participants).id
            apply_new_message(session, thread_id, email, "inbound", utcnow(), provider_id="re_same")
        with self.assertRaises(DuplicateMessageError) as ctx:
            with get_session() as session:
                apply_new_message(session, thread_id, email, "inbound", utcnow(), provider_id="re_same")
        self.assertIsNone(ctx.exception.message_id)
        self.assertEqual(ctx.exception.provider_id, "re_same")
        self.assertEqual(_count(Email), 1)
        self.assertEqual(contact_repo.get_contact_by_email("a@x.com")["email_count"], 1)

    def test_messages_without_any_id_are_both_stored(self):
        email = normalized("<unused@x.com>").model_copy(update={"message_id": None})
        with get_session() as session:
            thread_id = thread_repo.create_thread(session, email.subject, email.participants).id
            apply_new_message(session, thread_id, email, "inbound", utcnow())
            apply_new_message(session, thread_id, email, "inbound", utcnow())
        self.assertEqual(_count(Email), 2)

    def test_participants_never_shrink(self):
        thread_id, _, _ = store(normalized("<p1@x.com>", from_="a@x.com", to=["b@x.com", "c@x.com"]))
        sizes = []
        messages = [
            ("<p2@x.com>", "b@x.com", ["a@x.com"], "<p1@x.com>"),
            ("<p3@x.com>", "d@x.com", ["a@x.com"], "<p2@x.com>"),
            ("<p4@x.com>", "a@x.com", ["e@x.com"], "<p3@x.com>"),
            ("<p5@x.com>", "c@x.com", ["b@x.com"], "<p4@x.com>"),
        ]
        for mid, sender, to, parent in messages:
            resolved, _, _ = store(normalized(mid, from_=sender, to=to, in_reply_to=parent))
            self.assertEqual(resolved, thread_id)
            sizes.append(len(thread_repo.get_thread(thread_id)["participant_addresses"]))
        self.assertEqual(sizes, sorted(sizes))
        self.assertEqual(sizes[-1], 5)

    def test_thread_state_updates(self):
        thread_id, _, _ = store(normalized("<s1@x.com>", text="first"))
        thread_repo.update_flags(thread_id, is_read=True)
        later = utcnow() + timedelta(minutes=10)
        store(normalized("<s2@x.com>", text="  second\n\nmessage  ", in_reply_to="<s1@x.com>"), sent_at=later)
        thread = thread_repo.get_thread(thread_id)
        self.assertEqual(thread["snippet"], "second message")
        self.assertFalse(thread["is_read"])

    def test_last_message_at_does_not_go_backwards(self):
        now = utcnow()
        thread_id, _, _ = store(normalized("<t1@x.com>"), sent_at=now)
        store(normalized("<t0@x.com>", in_reply_to="<t1@x.com>"), sent_at=now - timedelta(days=1))
        with get_session() as session:
            self.assertEqual(as_utc(session.get(Thread, thread_id).last_message_at), now)

    def test_outbound_counts_each_recipient(self):
        email = normalized("<o1@me.com>", from_="me@me.com", to=["x@y.com", "z@y.com"], cc=["x@y.com", "w@y.com"])
        store(email, direction="outbound")
        for addr in ("x@y.com", "z@y.com", "w@y.com"):
            contact = contact_repo.get_contact_by_email(addr)
            self.assertEqual(contact["outbound_count"], 1, addr)
            self.assertEqual(contact["inbound_count"], 0, addr)
            self.assertEqual(contact["email_count"], 1, addr)
        self.assertIsNone(contact_repo.get_contact_by_email("me@me.com"))

    def test_concurrent_deliveries_from_new_sender(self):
        """Two simultaneous messages from an unknown sender yield one contact with both counts."""
        emails = [
            normalized("<c1@x.com>", from_="new@x.com", subject="First question"),
            normalized("<c2@x.com>", from_="new@x.com", subject="Second question"),
        ]
        with ThreadPoolExecutor(max_workers=2) as pool:
            list(pool.map(store, emails))
        self.assertEqual(contact_repo.count_contacts("new@x.com"), 1)
        self.assertEqual(contact_repo.get_contact_by_email("new@x.com")["email_count"], 2)

    def test_system_label_applied_once(self):
        thread_id, _, _ = store(normalized("<l1@x.com>"))
        with get_session() as session:
            apply_system_label(session, thread_id, INBOX_LABEL)
        with get_session() as session:
            apply_system_label(session, thread_id, INBOX_LABEL)
        labels = thread_repo.get_thread(thread_id)["labels"]
        self.assertEqual([label["name"] for label in labels], [INBOX_LABEL])

    def test_upsert_contact_rejects_bad_direction(self):
        with get_session() as session:
            with self.assertRaises(ValueError):
                contact_repo.upsert_contact(session, "a@x.com", "sideways", utcnow())
        self.assertEqual(_count(Contact), 0)


if __name__ == "__main__":
    unittest.main()
