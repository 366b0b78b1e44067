# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Encoding primitives used when serializing a message.

Provides:
- Encoding: body transfer encodings (quoted-printable, base64, 8bit)
- WordEncoder: RFC 2047 encoded-words for header values ("B" and "Q" forms)
- Base64Encoder / Base64LineWriter: streaming base64 hard-wrapped at 76 columns
- QuotedPrintableWriter: streaming RFC 2045 quoted-printable
- fold_header: RFC 5322 header line folding at 76 columns

Writers wrap any object with a ``write(bytes)`` method and may be fed in
arbitrary chunks; the encoders that buffer state must be closed.
"""

from __future__ import annotations

import base64
import binascii
from enum import Enum
from typing import Iterable, Protocol

# As required by RFC 2045, 6.7. for quoted-printable and 6.8. for base64.
# RFC 5322 allows 78 characters per header line and RFC 2047 76, the
# stricter limit is used for headers as well.
MAX_LINE_LEN = 76
MAX_ENCODED_WORD_LEN = 75
FOLDED_LINE_LEN = 75
CRLF = b"\r\n"


class ByteSink(Protocol):
    """Anything accepting bytes through ``write``."""

    def write(self, data: bytes) -> object: ...


class Encoding(str, Enum):
    """Content-Transfer-Encoding applied to a body part."""

    QUOTED_PRINTABLE = "quoted-printable"
    BASE64 = "base64"
    # Body left untouched, header words still use the Q encoding.
    UNENCODED = "8bit"


def _is_utf8(charset: str) -> bool:
    return charset.lower() in ("utf-8", "utf8")


def needs_encoding(text: str) -> bool:
    """Return True when ``text`` holds anything but printable US-ASCII or tabs."""
    return any((ch < " " or ch > "~") and ch != "\t" for ch in text)


def _q_safe(byte: int) -> bool:
    return 0x20 <= byte <= 0x7E and byte not in b"=?_"


def _q_string(data: bytes) -> str:
    out = []
    for byte in data:
        if byte == 0x20:
            out.append("_")
        elif _q_safe(byte):
            out.append(chr(byte))
        else:
            out.append(f"={byte:02X}")
    return "".join(out)


class WordEncoder:
    """RFC 2047 encoded-word encoder.

    ``kind`` is ``"b"`` (base64) or ``"q"`` (quoted-printable style). Values that
    need no encoding are returned unchanged. Long UTF-8 values are split into
    several encoded-words separated by a space, never splitting a character.
    """

    def __init__(self, kind: str):
        if kind not in ("b", "q"):
            raise ValueError(f"Unknown encoded-word kind: {kind}")
        self.kind = kind

    def __repr__(self) -> str:
        return f"WordEncoder({self.kind!r})"

    def encode(self, charset: str, text: str) -> str:
        if not needs_encoding(text):
            return text
        if self.kind == "b":
            return self._b_encode(charset, text)
        return self._q_encode(charset, text)

    def _open(self, charset: str) -> str:
        return f"=?{charset}?{self.kind}?"

    def _max_content_len(self, charset: str) -> int:
        return MAX_ENCODED_WORD_LEN - len("=?") - len(charset) - len("?b?") - len("?=")

    def _b_encode(self, charset: str, text: str) -> str:
        data = text.encode(charset)
        max_content = self._max_content_len(charset)
        if not _is_utf8(charset) or (len(data) + 2) // 3 * 4 <= max_content:
            return self._word(charset, base64.b64encode(data).decode("ascii"))

        max_chunk = max_content // 4 * 3
        chunks: list[bytes] = []
        current = b""
        for ch in text:
            encoded = ch.encode(charset)
            if current and len(current) + len(encoded) > max_chunk:
                chunks.append(current)
                current = b""
            current += encoded
        chunks.append(current)
        return " ".join(
            self._word(charset, base64.b64encode(chunk).decode("ascii")) for chunk in chunks
        )

    def _q_encode(self, charset: str, text: str) -> str:
        if not _is_utf8(charset):
            return self._word(charset, _q_string(text.encode(charset)))

        max_content = self._max_content_len(charset)
        words: list[str] = []
        current: list[str] = []
        current_len = 0
        for ch in text:
            encoded = ch.encode(charset)
            enc_len = 1 if len(encoded) == 1 and _q_safe(encoded[0]) else 3 * len(encoded)
            if current_len + enc_len > max_content:
                words.append("".join(current))
                current = []
                current_len = 0
            current.append(_q_string(encoded))
            current_len += enc_len
        words.append("".join(current))
        return " ".join(self._word(charset, word) for word in words)

    def _word(self, charset: str, payload: str) -> str:
        return f"{self._open(charset)}{payload}?="


B_ENCODING = WordEncoder("b")
Q_ENCODING = WordEncoder("q")


class Base64LineWriter:
    """Insert CRLF after every 76 characters of already encoded base64 text.

    The column count survives across ``write`` calls.
    """

    def __init__(self, sink: ByteSink):
        self._sink = sink
        self._line_len = 0

    def write(self, data: bytes) -> int:
        written = 0
        while len(data) + self._line_len > MAX_LINE_LEN:
            cut = MAX_LINE_LEN - self._line_len
            self._sink.write(data[:cut])
            self._sink.write(CRLF)
            data = data[cut:]
            written += cut
            self._line_len = 0

        self._sink.write(data)
        self._line_len += len(data)
        return written + len(data)


class Base64Encoder:
    """Streaming base64 body encoder, wrapped at 76 columns.

    Input that does not fill a 3-byte group is kept until the next write;
    ``close`` flushes it with padding.
    """

    def __init__(self, sink: ByteSink):
        self._lines = Base64LineWriter(sink)
        self._pending = b""

    def write(self, data: bytes) -> int:
        size = len(data)
        buffer = self._pending + bytes(data)
        complete = len(buffer) - len(buffer) % 3
        if complete:
            self._lines.write(base64.b64encode(buffer[:complete]))
        self._pending = buffer[complete:]
        return size

    def close(self) -> None:
        if self._pending:
            self._lines.write(base64.b64encode(self._pending))
            self._pending = b""


class QuotedPrintableWriter:
    """Streaming quoted-printable body encoder.

    Complete lines are encoded as soon as their terminator arrives (``\\n``,
    ``\\r\\n`` or a lone ``\\r`` all become CRLF hard breaks); soft breaks are
    inserted by :func:`binascii.b2a_qp`. The unterminated tail is held until
    the next write or ``close``.
    """

    def __init__(self, sink: ByteSink):
        self._sink = sink
        self._pending = b""

    def write(self, data: bytes) -> int:
        size = len(data)
        buffer = self._pending + bytes(data)
        cut = buffer.rfind(b"\n")
        if cut == -1:
            self._pending = buffer
            return size
        self._pending = buffer[cut + 1:]
        for line in buffer[: cut + 1].splitlines():
            self._write_line(line, terminated=True)
        return size

    def close(self) -> None:
        if not self._pending:
            return
        pending, self._pending = self._pending, b""
        lines = pending.splitlines(keepends=True)
        for line in lines:
            stripped = line.rstrip(b"\r\n")
            self._write_line(stripped, terminated=stripped != line)

    def _write_line(self, line: bytes, terminated: bool) -> None:
        encoded = binascii.b2a_qp(line, istext=True).replace(b"\n", CRLF)
        self._sink.write(encoded + CRLF if terminated else encoded)


def _fold_line(out: list[str], value: str, chars_left: int) -> str:
    """Write one folded sub-line of ``value`` to ``out`` and return the rest."""
    # A newline already present before the limit ends the line.
    newline = value.find("\n")
    if newline != -1 and newline < chars_left:
        out.append(value[: newline + 1])
        return value[newline + 1:]

    for i in range(chars_left - 1, -1, -1):
        if value[i] == " ":
            out.append(value[:i])
            out.append("\r\n ")
            return value[i + 1:]

    # No clean break: accept an overlong line up to the next space or newline.
    for i in range(chars_left, len(value)):
        if value[i] == " ":
            out.append(value[:i])
            out.append("\r\n ")
            return value[i + 1:]
        if value[i] == "\n":
            out.append(value[: i + 1])
            return value[i + 1:]

    out.append(value)
    return ""


def fold_header(key: str, values: Iterable[str]) -> str:
    """Return ``key: values`` folded to 76 columns and terminated by CRLF.

    Multiple values are joined with ``", "``.
    """
    values = list(values)
    if not values:
        return f"{key}:\r\n"

    out = [key, ": "]
    chars_left = MAX_LINE_LEN - len(key) - len(": ")
    for index, value in enumerate(values):
        if chars_left < 1:
            out.append("\r\n " if index == 0 else ",\r\n ")
            chars_left = FOLDED_LINE_LEN
        elif index != 0:
            out.append(", ")
            chars_left -= 2

        while len(value) > chars_left:
            value = _fold_line(out, value, chars_left)
            chars_left = FOLDED_LINE_LEN
        out.append(value)

        newline = value.rfind("\n")
        if newline != -1:
            chars_left = FOLDED_LINE_LEN - (len(value) - newline - 1)
        else:
            chars_left -= len(value)
    out.append("\r\n")
    return "".join(out)


__all__ = [
    "B_ENCODING",
    "Base64Encoder",
    "Base64LineWriter",
    "ByteSink",
    "Encoding",
    "MAX_LINE_LEN",
    "Q_ENCODING",
    "QuotedPrintableWriter",
    "WordEncoder",
    "fold_header",
    "needs_encoding",
]
