# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Unit tests for the streaming MIME writer output."""

import base64
import io
import itertools
from datetime import datetime, timezone
from email import message_from_bytes, policy

import pytest

from mime_mailer.encoding import Encoding, MAX_LINE_LEN
from mime_mailer.headers import Header
from mime_mailer.message import Message
from mime_mailer.parts import File, copier
from mime_mailer.writer import MAX_DEPTH, MessageWriter, make_boundary

FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
DATE_LINE = "Date: Tue, 02 Jan 2024 03:04:05 +0000\r\n"


def _options():
    counter = itertools.count(1)
    return {"boundary_factory": lambda: f"b{next(counter)}", "clock": lambda: FIXED_NOW}


def _write(msg: Message) -> str:
    return msg.as_bytes(**_options()).decode("utf-8")


def _base_message(**kwargs) -> Message:
    msg = Message(**kwargs)
    msg.set_from("alice@example.com", "Alice")
    msg.set_to(["bob@example.com"])
    msg.set_subject("Hi")
    return msg


HEADERS = (
    "Mime-Version: 1.0\r\n"
    + DATE_LINE
    + 'From: "Alice" <alice@example.com>\r\n'
    "To: bob@example.com\r\n"
    "Subject: Hi\r\n"
)
PLAIN_PART_HEADERS = "Content-Type: text/plain; charset=UTF-8\r\nContent-Transfer-Encoding: quoted-printable\r\n"
HTML_PART_HEADERS = "Content-Type: text/html; charset=UTF-8\r\nContent-Transfer-Encoding: quoted-printable\r\n"


class TestSinglePart:
    """Messages written without any multipart container."""

    def test_single_part_is_flat(self):
        """One body part produces top-level headers, a blank line and the body."""
        msg = _base_message()
        msg.set_body("text/plain", "Hello\n")

        assert _write(msg) == HEADERS + PLAIN_PART_HEADERS + "\r\nHello\r\n"
        assert "multipart/" not in _write(msg)

    def test_byte_count_matches_output(self):
        """write_to returns the number of bytes handed to the sink."""
        msg = _base_message()
        msg.set_body("text/plain", "Hello\n")
        sink = io.BytesIO()

        assert msg.write_to(sink, **_options()) == len(sink.getvalue())

    def test_existing_date_and_version_not_duplicated(self):
        """Caller supplied Mime-Version and Date are kept as is."""
        msg = Message()
        msg.set_header("MIME-Version", "1.0")
        msg.set_date_header("Date", datetime(2020, 5, 6, 7, 8, 9, tzinfo=timezone.utc))
        msg.set_body("text/plain", "x")
        out = _write(msg)

        assert out.count("ersion: 1.0") == 1
        assert out.count("Date: ") == 1
        assert "Date: Wed, 06 May 2020 07:08:09 +0000\r\n" in out

    def test_bcc_never_written(self):
        """Bcc stays in the model but not on the wire."""
        msg = _base_message()
        msg.set_header("Bcc", "x@y.com")
        msg.set_body("text/plain", "secret")
        out = _write(msg)

        assert "To: bob@example.com\r\n" in out
        assert "Bcc" not in out
        assert msg.get_recipients() == ["bob@example.com", "x@y.com"]

    def test_base64_body(self):
        """Base64 parts are wrapped at 76 columns."""
        msg = _base_message(encoding=Encoding.BASE64)
        body = "x" * 200
        msg.set_body("text/plain", body)
        out = _write(msg)

        assert "Content-Transfer-Encoding: base64\r\n" in out
        encoded = out.split("\r\n\r\n", 1)[1]
        lines = encoded.split("\r\n")
        assert all(len(line) <= MAX_LINE_LEN for line in lines)
        assert base64.b64decode("".join(lines)) == body.encode()

    def test_unencoded_body_passthrough(self):
        """8bit parts are written raw."""
        msg = _base_message()
        msg.set_body("text/plain", "héllo=world", encoding=Encoding.UNENCODED)
        out = _write(msg)

        assert "Content-Transfer-Encoding: 8bit\r\n" in out
        assert out.endswith("\r\n\r\nhéllo=world")

    def test_body_uses_message_charset(self):
        """String bodies are encoded with the message charset."""
        msg = _base_message(charset="ISO-8859-1")
        msg.set_body("text/plain", "café")
        out = _write(msg)

        assert "Content-Type: text/plain; charset=ISO-8859-1\r\n" in out
        assert out.endswith("caf=E9")

    def test_long_subject_folded(self):
        """Top-level headers are folded within 76 columns."""
        msg = _base_message()
        msg.set_subject(" ".join(["lorem ipsum dolor"] * 12))
        msg.set_body("text/plain", "x")
        header_block = _write(msg).split("\r\n\r\n", 1)[0]

        assert all(len(line) <= MAX_LINE_LEN for line in header_block.split("\r\n"))

    def test_non_ascii_subject_encoded(self):
        """Non-ASCII header values go out as encoded words."""
        msg = _base_message()
        msg.set_subject("Réunion")
        msg.set_body("text/plain", "x")
        assert "Subject: =?UTF-8?q?R=C3=A9union?=\r\n" in _write(msg)

    def test_lone_attachment_is_the_body(self):
        """A single attachment without parts is written without a container."""
        msg = _base_message()
        msg.attachments.append(File(name="note.txt", copy_func=copier(b"hello")))
        out = _write(msg)

        assert "multipart/" not in out
        assert out == (
            HEADERS
            + 'Content-Type: text/plain; name="note.txt"\r\n'
            + "Content-Transfer-Encoding: base64\r\n"
            + 'Content-Disposition: attachment; filename="note.txt"\r\n'
            + "\r\n"
            + "aGVsbG8="
        )


class TestMultipart:
    """Messages nesting mixed, related and alternative containers."""

    def test_alternative_only(self):
        """N parts produce one flat alternative container with the parts in order."""
        msg = _base_message()
        msg.set_body("text/plain", "Hi")
        msg.add_alternative("text/html", "<p>Hi</p>")

        assert _write(msg) == (
            HEADERS
            + "Content-Type: multipart/alternative;\r\n boundary=b1\r\n"
            + "\r\n"
            + "--b1\r\n" + PLAIN_PART_HEADERS + "\r\n" + "Hi"
            + "\r\n--b1\r\n" + HTML_PART_HEADERS + "\r\n" + "<p>Hi</p>"
            + "\r\n--b1--\r\n"
        )

    def test_three_alternatives_in_order(self):
        """Part order is preserved and no other container is opened."""
        msg = _base_message()
        msg.set_body("text/plain", "one")
        msg.add_alternative("text/html", "two")
        msg.add_alternative("text/x-custom", "three")
        out = _write(msg)

        assert out.count("multipart/") == 1
        assert out.count("--b1\r\n") == 3
        assert out.index("one") < out.index("two") < out.index("three")
        assert "mixed" not in out and "related" not in out

    def test_part_with_attachment_opens_mixed_only(self):
        """One part and one attachment open a single mixed container."""
        msg = _base_message()
        msg.set_body("text/plain", "Hi")
        msg.attachments.append(File(name="note.txt", copy_func=copier(b"hello")))

        assert _write(msg) == (
            HEADERS
            + "Content-Type: multipart/mixed;\r\n boundary=b1\r\n"
            + "\r\n"
            + "--b1\r\n" + PLAIN_PART_HEADERS + "\r\n" + "Hi"
            + "\r\n--b1\r\n"
            + 'Content-Type: text/plain; name="note.txt"\r\n'
            + "Content-Transfer-Encoding: base64\r\n"
            + 'Content-Disposition: attachment; filename="note.txt"\r\n'
            + "\r\n"
            + "aGVsbG8="
            + "\r\n--b1--\r\n"
        )

    def test_two_attachments_open_mixed(self):
        """A part with two attachments is mixed, not alternative."""
        msg = _base_message()
        msg.set_body("text/plain", "Hi")
        msg.attachments.append(File(name="a.txt", copy_func=copier(b"a")))
        msg.attachments.append(File(name="b.txt", copy_func=copier(b"b")))
        out = _write(msg)

        assert out.count("multipart/mixed") == 1
        assert "multipart/alternative" not in out
        assert out.count("--b1\r\n") == 3

    def test_embedded_resource_opens_related(self):
        """An embedded file sits in a related container with default inline headers."""
        msg = _base_message()
        msg.set_body("text/html", '<img src="cid:logo.png">')
        msg.embedded.append(File(name="logo.png", copy_func=copier(b"\x89PNG")))
        out = _write(msg)

        assert "Content-Type: multipart/related;\r\n boundary=b1\r\n" in out
        assert (
            'Content-Type: image/png; name="logo.png"\r\n'
            "Content-Transfer-Encoding: base64\r\n"
            'Content-Disposition: inline; filename="logo.png"\r\n'
            "Content-ID: <logo.png>\r\n"
        ) in out
        assert out.endswith("\r\n--b1--\r\n")

    def test_full_nesting_order(self):
        """mixed > related > alternative open in order and close in reverse."""
        msg = _base_message()
        msg.set_body("text/plain", "Hi")
        msg.add_alternative("text/html", '<img src="cid:logo.png">')
        msg.embedded.append(File(name="logo.png", copy_func=copier(b"png")))
        msg.attachments.append(File(name="report.pdf", copy_func=copier(b"pdf")))
        out = _write(msg)

        assert "Content-Type: multipart/mixed;\r\n boundary=b1\r\n\r\n--b1\r\n" in out
        assert "--b1\r\nContent-Type: multipart/related;\r\n boundary=b2\r\n\r\n--b2\r\n" in out
        assert "--b2\r\nContent-Type: multipart/alternative;\r\n boundary=b3\r\n\r\n--b3\r\n" in out

        close_alt = out.index("\r\n--b3--\r\n")
        close_rel = out.index("\r\n--b2--\r\n")
        close_mix = out.index("\r\n--b1--\r\n")
        assert out.index("Content-ID: <logo.png>") > close_alt
        assert close_alt < close_rel < out.index('filename="report.pdf"') < close_mix
        assert out.endswith("\r\n--b1--\r\n")

    def test_output_parses_back(self):
        """The standard library parser sees the expected tree."""
        msg = _base_message()
        msg.set_subject("Réunion trimestrielle")
        msg.set_body("text/plain", "Voilà le rapport.\n")
        msg.add_alternative("text/html", "<p>Voilà le rapport.</p>\n")
        msg.embedded.append(File(name="logo.png", copy_func=copier(b"\x89PNG\r\n")))
        msg.attachments.append(File(name="report.pdf", copy_func=copier(b"%PDF-1.4" * 40)))

        parsed = message_from_bytes(msg.as_bytes(), policy=policy.default)

        assert parsed["Subject"] == "Réunion trimestrielle"
        assert parsed.get_content_type() == "multipart/mixed"
        related, attachment = parsed.get_payload()
        assert related.get_content_type() == "multipart/related"
        alternative, logo = related.get_payload()
        assert [p.get_content_type() for p in alternative.get_payload()] == ["text/plain", "text/html"]
        assert alternative.get_payload()[0].get_content().rstrip("\r\n") == "Voilà le rapport."
        assert logo.get_payload(decode=True) == b"\x89PNG\r\n"
        assert attachment.get_filename() == "report.pdf"
        assert attachment.get_payload(decode=True) == b"%PDF-1.4" * 40

    def test_file_header_overrides(self):
        """Caller headers replace the defaults, missing ones are still added."""
        msg = _base_message()
        msg.set_body("text/html", '<img src="cid:brand">')
        logo = File(name="logo.png", copy_func=copier(b"png"))
        logo.set_header("Content-ID", "<brand>")
        logo.set_header("Content-Type", "image/png")
        msg.embedded.append(logo)
        out = _write(msg)

        assert "Content-ID: <brand>\r\n" in out
        assert "Content-ID: <logo.png>" not in out
        assert "Content-Type: image/png\r\n" in out
        assert "Content-Disposition: inline" in out
        assert list(logo.headers) == ["Content-ID", "Content-Type"]

    def test_files_always_base64(self):
        """Files ignore the message body encoding."""
        msg = _base_message(encoding=Encoding.UNENCODED)
        msg.set_body("text/plain", "Hi")
        msg.attachments.append(File(name="data.bin", copy_func=copier(b"\x00\x01\x02")))
        out = _write(msg)

        assert "Content-Transfer-Encoding: 8bit\r\n" in out
        assert "AAEC" in out
        assert "\x00" not in out

    def test_file_from_disk(self, tmp_path):
        """Attached files are streamed from disk."""
        path = tmp_path / "report.csv"
        path.write_bytes(b"a,b\n1,2\n")
        msg = _base_message()
        msg.set_body("text/plain", "Hi")
        msg.attach(path)
        out = _write(msg)

        assert 'Content-Type: text/csv; name="report.csv"\r\n' in out
        assert base64.b64encode(b"a,b\n1,2\n").decode() in out

    def test_producer_invoked_once(self):
        """Each producer runs exactly once per serialization."""
        calls = []

        def producer(sink):
            calls.append(1)
            sink.write(b"generated\n")

        msg = _base_message()
        msg.set_body("text/plain", "Hi")
        msg.add_alternative_writer("text/html", producer)
        out = _write(msg)

        assert calls == [1]
        assert "generated\r\n" in out


class TestIdempotence:
    """Tests for reset and repeated serialization."""

    @staticmethod
    def _populate(msg: Message) -> None:
        msg.set_from("alice@example.com", "Alice")
        msg.set_to(["bob@example.com", "carol@example.com"])
        msg.set_subject("Résumé")
        msg.set_body("text/plain", "Hi")
        msg.add_alternative("text/html", "<p>Hi</p>")
        msg.attachments.append(File(name="a.txt", copy_func=copier(b"a")))

    def test_reset_then_repopulate_matches_fresh(self):
        """reset followed by the same calls gives byte-identical output."""
        fresh = Message()
        self._populate(fresh)

        reused = Message()
        reused.set_subject("something else")
        reused.set_header("X-Old", "1")
        reused.embedded.append(File(name="old.png", copy_func=copier(b"old")))
        reused.reset()
        self._populate(reused)

        assert reused.as_bytes(**_options()) == fresh.as_bytes(**_options())


class TestWriterInternals:
    """Tests for MessageWriter helpers."""

    def test_boundaries_are_unique(self):
        """Generated boundaries are 60 hex characters and differ."""
        boundaries = {make_boundary() for _ in range(20)}
        assert len(boundaries) == 20
        assert all(len(b) == 60 and int(b, 16) >= 0 for b in boundaries)

    def test_depth_bounded(self):
        """At most three containers can be open."""
        writer = MessageWriter(io.BytesIO())
        for subtype in ("mixed", "related", "alternative"):
            writer.open_multipart(subtype)
        assert writer.depth == MAX_DEPTH

        with pytest.raises(RuntimeError):
            writer.open_multipart("mixed")

    def test_close_multipart_lifo(self):
        """Closing pops the innermost container."""
        sink = io.BytesIO()
        writer = MessageWriter(sink, boundary_factory=iter(["outer", "inner"]).__next__)
        writer.open_multipart("mixed")
        writer.open_multipart("related")
        writer.close_multipart()
        writer.close_multipart()
        writer.close_multipart()

        out = sink.getvalue().decode()
        assert writer.depth == 0
        assert out.index("--inner--") < out.index("--outer--")

    def test_nested_headers_folded(self):
        """Part headers reached through nested parts are folded too."""
        sink = io.BytesIO()
        writer = MessageWriter(sink, boundary_factory=lambda: "b")
        writer.open_multipart("mixed")
        writer.write_headers(Header({"Content-Description": [" ".join(["word"] * 40)]}))

        lines = sink.getvalue().decode().split("\r\n")
        assert all(len(line) <= MAX_LINE_LEN for line in lines)
        assert any(line.startswith(" word") for line in lines)
