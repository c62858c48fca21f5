"""
Tests for building message contexts from raw messages.
"""

import pytest

from threat_engine.exceptions import MessageParseError
from threat_engine.message_parser import extract_links, parse_context
from threat_engine.models import InboundMessage


MULTIPART = (
    "From: reports@example.com\r\n"
    "Subject: =?utf-8?b?UXVhcnRlcmx5IHJlcG9ydA==?=\r\n"
    "MIME-Version: 1.0\r\n"
    "Content-Type: multipart/mixed; boundary=\"XYZ\"\r\n"
    "\r\n"
    "--XYZ\r\n"
    "Content-Type: text/html; charset=utf-8\r\n"
    "\r\n"
    "<html><body><p>Click <a href=\"http://evil.example/login\">here</a></p></body></html>\r\n"
    "--XYZ\r\n"
    "Content-Type: application/pdf\r\n"
    "Content-Disposition: attachment; filename=\"invoice.pdf\"\r\n"
    "Content-Transfer-Encoding: base64\r\n"
    "\r\n"
    "JVBERi0xLjQK\r\n"
    "--XYZ--\r\n"
)


class TestParseContext:

    def test_headers_and_body(self, raw_clean):
        context = parse_context(InboundMessage(raw_message=raw_clean))

        assert context.from_address == "Alice <alice@example.com>"
        assert context.subject == "Lunch tomorrow"
        assert context.message_id == "<lunch-1@example.com>"
        assert context.sender_domain == "example.com"
        assert context.body.startswith("Hi Bob")
        assert len(context.header_values("received")) == 1
        assert context.header("Authentication-Results").startswith("mx.example.org")

    def test_explicit_fields_win(self, raw_clean):
        context = parse_context(InboundMessage(
            id="given-id",
            subject="Override",
            raw_message=raw_clean,
            client_address="198.51.100.7",
        ))

        assert context.message_id == "given-id"
        assert context.subject == "Override"
        assert context.client_address == "198.51.100.7"
        assert context.from_address == "Alice <alice@example.com>"

    def test_dictionary_input(self):
        context = parse_context({"from": "bob@example.org", "subject": "Hi", "body": "see http://x.example/a"})

        assert context.from_address == "bob@example.org"
        assert context.links == ["http://x.example/a"]
        assert context.headers == {}

    def test_bytes_input(self, raw_clean):
        context = parse_context(InboundMessage(raw_message=raw_clean.encode("utf-8")))
        assert context.subject == "Lunch tomorrow"

    def test_multipart_html_and_attachment(self):
        context = parse_context(InboundMessage(raw_message=MULTIPART))

        assert context.subject == "Quarterly report"
        assert "Click" in context.body
        assert "<a" not in context.body
        assert context.links == ["http://evil.example/login"]
        assert context.metadata['attachment_count'] == 1
        assert context.metadata['has_html'] is True

    @pytest.mark.parametrize("raw", [None, "", "   \r\n"])
    def test_empty_raw_message(self, raw):
        context = parse_context(InboundMessage(subject="only fields", raw_message=raw))

        assert context.headers == {}
        assert context.subject == "only fields"

    @pytest.mark.parametrize("raw", [12345, ["From: a@example.com"], {"raw": "x"}])
    def test_raw_must_be_text_or_bytes(self, raw):
        with pytest.raises(MessageParseError):
            parse_context(InboundMessage(raw_message=raw))

    def test_text_without_headers_is_unparseable(self):
        with pytest.raises(MessageParseError):
            parse_context(InboundMessage(raw_message="this is not an email\nat all\n"))


class TestExtractLinks:

    def test_deduplicates_and_strips_punctuation(self):
        links = extract_links("Go to http://a.example/x. Or https://b.example/y), then http://a.example/x")
        assert links == ["http://a.example/x", "https://b.example/y"]

    def test_multiple_texts(self):
        assert extract_links("http://a.example", None, "<a href='http://b.example'>") == [
            "http://a.example",
            "http://b.example",
        ]
