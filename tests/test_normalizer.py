"""Tests for address, subject and header normalization."""

import unittest

from support import email_data

from src.ingest.normalizer import (
    NO_CONTENT_PLACEHOLDER,
    canonical_addresses,
    extract_display_name,
    extract_email_address,
    get_header,
    is_valid_address,
    make_snippet,
    normalize_envelope,
    normalize_subject,
    parse_references,
)
from src.webhook.models import InboundEmailData, InboundHeader


class TestAddresses(unittest.TestCase):
    def test_extract_email_address(self):
        self.assertEqual(extract_email_address("Jane Doe <Jane@X.com>"), "jane@x.com")
        self.assertEqual(extract_email_address('"Doe, Jane" <jane@x.com>'), "jane@x.com")
        self.assertEqual(extract_email_address("  BOB@x.com "), "bob@x.com")
        self.assertEqual(extract_email_address("<c@x.com>"), "c@x.com")
        self.assertEqual(extract_email_address(None), "")

    def test_extract_display_name(self):
        self.assertEqual(extract_display_name("Jane Doe <jane@x.com>"), "Jane Doe")
        self.assertEqual(extract_display_name('"Doe, Jane" <jane@x.com>'), "Doe, Jane")
        self.assertIsNone(extract_display_name("jane@x.com"))

    def test_canonical_addresses_dedupes_in_order(self):
        self.assertEqual(
            canonical_addresses(["B <b@x.com>", "a@x.com", "b@X.com", ""]),
            ["b@x.com", "a@x.com"],
        )

    def test_is_valid_address(self):
        self.assertTrue(is_valid_address("Jane <jane@x.com>"))
        self.assertFalse(is_valid_address("not-an-address"))
        self.assertFalse(is_valid_address(""))


class TestSubject(unittest.TestCase):
    def test_strips_english_and_german_prefixes(self):
        self.assertEqual(normalize_subject("Re: Hello"), "Hello")
        self.assertEqual(normalize_subject("FWD: Hello"), "Hello")
        self.assertEqual(normalize_subject("AW: Angebot"), "Angebot")
        self.assertEqual(normalize_subject("wg: Angebot"), "Angebot")
        self.assertEqual(normalize_subject("Fw:Report "), "Report")

    def test_two_passes_for_doubled_prefixes(self):
        self.assertEqual(normalize_subject("Re: Aw: Projekt"), "Projekt")
        self.assertEqual(normalize_subject("RE: re: Hello"), "Hello")
        # Only two prefixes are removed
        self.assertEqual(normalize_subject("Re: Re: Re: Hello"), "Re: Hello")

    def test_prefix_must_be_leading(self):
        self.assertEqual(normalize_subject("About Re: Hello"), "About Re: Hello")
        self.assertEqual(normalize_subject(None), "")


class TestHeaders(unittest.TestCase):
    def test_case_insensitive_lookup(self):
        headers = [InboundHeader(name="IN-REPLY-TO", value="<a@x>")]
        self.assertEqual(get_header(headers, "in-reply-to"), "<a@x>")
        self.assertIsNone(get_header(headers, "references"))

    def test_parse_references(self):
        self.assertEqual(parse_references("<a@x>  <b@x>\n\t<c@x>"), ["<a@x>", "<b@x>", "<c@x>"])
        self.assertEqual(parse_references(""), [])

    def test_make_snippet(self):
        text = "Hello\n\n   world  " + "x" * 300
        snippet = make_snippet(text)
        self.assertTrue(snippet.startswith("Hello world"))
        self.assertLessEqual(len(snippet), 150)


class TestNormalizeEnvelope(unittest.TestCase):
    def test_full_envelope(self):
        data = InboundEmailData.model_validate(
            email_data(
                "<m2@x.com>",
                from_="Alice Smith <Alice@X.com>",
                to=["B <b@x.com>"],
                cc=["C@x.com"],
                reply_to=["Help <help@x.com>"],
                subject="Re: Hello",
                in_reply_to="<m1@x.com>",
                references="<m0@x.com> <m1@x.com>",
            )
        )
        email = normalize_envelope(data)
        self.assertEqual(email.message_id, "<m2@x.com>")
        self.assertEqual(email.in_reply_to, "<m1@x.com>")
        self.assertEqual(email.references, ["<m0@x.com>", "<m1@x.com>"])
        self.assertEqual(email.from_address, "alice@x.com")
        self.assertEqual(email.from_name, "Alice Smith")
        self.assertEqual(email.to_addresses, ["b@x.com"])
        self.assertEqual(email.cc_addresses, ["c@x.com"])
        self.assertEqual(email.reply_to, "help@x.com")
        self.assertEqual(email.normalized_subject, "Hello")
        self.assertEqual(email.participants, ["alice@x.com", "b@x.com", "c@x.com"])

    def test_html_only_body_is_converted(self):
        data = InboundEmailData.model_validate(
            email_data("<m@x.com>", text=None, html="<p>Hello <b>there</b></p><script>x()</script>")
        )
        email = normalize_envelope(data)
        self.assertIn("Hello", email.body_text)
        self.assertNotIn("<p>", email.body_text)
        self.assertNotIn("script", email.body_html)

    def test_empty_body_placeholder(self):
        data = InboundEmailData.model_validate(email_data("<m@x.com>", text=""))
        self.assertEqual(normalize_envelope(data).body_text, NO_CONTENT_PLACEHOLDER)

    def test_headers_object_form(self):
        raw = email_data("<m@x.com>")
        raw["headers"] = {"Message-ID": "<m@x.com>", "References": "<r@x.com>"}
        email = normalize_envelope(InboundEmailData.model_validate(raw))
        self.assertEqual(email.references, ["<r@x.com>"])

    def test_attachment_size_estimated_from_base64(self):
        raw = email_data("<m@x.com>", attachments=[{"filename": "a.txt", "contentType": "text/plain", "content": "aGVsbG8gd29ybGQh"}])
        email = normalize_envelope(InboundEmailData.model_validate(raw))
        self.assertEqual(email.attachments[0].size, 12)
        self.assertEqual(email.attachments[0].content_type, "text/plain")


if __name__ == "__main__":
    unittest.main()
