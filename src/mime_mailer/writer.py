# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Streaming MIME writer.

Serializes a :class:`~mime_mailer.message.Message` straight into a byte sink
without materializing the whole message. The body structure is nested in
at most three multipart containers, always in this order::

    multipart/mixed          (body + attachments)
      multipart/related      (body + embedded resources)
        multipart/alternative  (alternative body parts)

A container is only opened when needed, so a message with a single part
is written flat. Containers close in reverse opening order.

Errors are latched: the first exception raised by the sink or by a content
producer is stored on :attr:`MessageWriter.error`, every later write is
skipped, and :meth:`MessageWriter.write_message` returns the bytes written
so far.
"""

from __future__ import annotations

import secrets
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Iterable

from .encoding import Base64Encoder, ByteSink, Encoding, QuotedPrintableWriter, fold_header
from .errors import SerializationError
from .headers import Header
from .logger import get_logger

if TYPE_CHECKING:
    from .message import Message
    from .parts import ContentProducer, File, Part

# mixed > related > alternative
MAX_DEPTH = 3

logger = get_logger("MimeMailer.writer")


def make_boundary() -> str:
    """Return a random 60 hex digit multipart boundary."""
    return secrets.token_hex(30)


class MultipartWriter:
    """Boundary bookkeeping for one open multipart container."""

    def __init__(self, writer: MessageWriter, boundary: str):
        self.boundary = boundary
        self._writer = writer
        self._has_parts = False

    def create_part(self, header: Header) -> None:
        """Write the delimiter and headers introducing the next part."""
        delimiter = "\r\n--" if self._has_parts else "--"
        self._writer.write_string(f"{delimiter}{self.boundary}\r\n")
        for key, values in header.items():
            self._writer.write_string(fold_header(key, values))
        self._writer.write_string("\r\n")
        self._has_parts = True

    def close(self) -> None:
        self._writer.write_string(f"\r\n--{self.boundary}--\r\n")


class MessageWriter:
    """Single-pass writer turning a message into wire bytes.

    Args:
        sink: Object accepting bytes through ``write``.
        boundary_factory: Callable returning a fresh boundary token.
        clock: Callable returning the current time, used for a missing Date.
    """

    def __init__(
        self,
        sink: ByteSink,
        *,
        boundary_factory: Callable[[], str] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._sink = sink
        self._boundary_factory = boundary_factory or make_boundary
        self._clock = clock or (lambda: datetime.now().astimezone())
        self._writers: list[MultipartWriter] = []
        self.bytes_written = 0
        self.error: BaseException | None = None

    @property
    def depth(self) -> int:
        """Number of currently open multipart containers."""
        return len(self._writers)

    # ------------------------------------------------------------------ output
    def _emit(self, data: bytes) -> None:
        if self.error is not None:
            return
        try:
            written = self._sink.write(data)
        except Exception as exc:
            self.error = exc
            return
        self.bytes_written += len(data) if written is None else int(written)

    def write_string(self, text: str) -> None:
        self._emit(text.encode("utf-8"))

    def write(self, data: bytes) -> int:
        """File-like entry point used by content producers and body encoders."""
        if self.error is not None:
            raise SerializationError("cannot write as writer is in error", self.bytes_written) from self.error
        self._emit(bytes(data))
        if self.error is not None:
            raise SerializationError(f"write failed: {self.error}", self.bytes_written) from self.error
        return len(data)

    # ----------------------------------------------------------------- headers
    def write_header(self, key: str, values: Iterable[str]) -> None:
        self.write_string(fold_header(key, values))

    def write_headers(self, header: Header) -> None:
        """Write top-level headers, or open a new part when nested."""
        if self.depth == 0:
            for key, values in header.items():
                if key.lower() != "bcc":
                    self.write_header(key, values)
        else:
            self._writers[-1].create_part(header)

    # -------------------------------------------------------------- multipart
    def open_multipart(self, subtype: str) -> None:
        if self.depth >= MAX_DEPTH:
            raise RuntimeError(f"cannot nest more than {MAX_DEPTH} multipart containers")
        container = MultipartWriter(self, self._boundary_factory())
        content_type = f"multipart/{subtype};\r\n boundary={container.boundary}"
        if self.depth == 0:
            self.write_header("Content-Type", [content_type])
            self.write_string("\r\n")
        else:
            self._writers[-1].create_part(Header({"Content-Type": [content_type]}))
        self._writers.append(container)
        logger.debug("Opened multipart/%s at depth %d", subtype, self.depth)

    def close_multipart(self) -> None:
        if self.depth > 0:
            self._writers.pop().close()

    # ------------------------------------------------------------------ bodies
    def write_body(self, producer: ContentProducer, encoding: Encoding) -> None:
        """Run ``producer`` through the encoder selected by ``encoding``."""
        if self.error is not None:
            return
        if self.depth == 0:
            self.write_string("\r\n")

        if encoding is Encoding.BASE64:
            encoder = Base64Encoder(self)
        elif encoding is Encoding.UNENCODED:
            encoder = None
        else:
            encoder = QuotedPrintableWriter(self)

        try:
            if encoder is None:
                producer(self)
            else:
                producer(encoder)
                encoder.close()
        except Exception as exc:
            if self.error is None:
                self.error = exc
            logger.debug("Content producer failed: %s", exc)

    def write_part(self, part: Part, charset: str) -> None:
        self.write_headers(
            Header(
                {
                    "Content-Type": [f"{part.content_type}; charset={charset}"],
                    "Content-Transfer-Encoding": [part.encoding.value],
                }
            )
        )
        self.write_body(part.copier, part.encoding)

    def add_files(self, files: Iterable[File], is_attachment: bool) -> None:
        for item in files:
            if self.error is not None:
                return
            self.write_headers(item.mime_headers(is_attachment))
            # File bodies are always base64, whatever the message default.
            self.write_body(item.copy_func, Encoding.BASE64)

    # ----------------------------------------------------------------- message
    def write_message(self, message: Message) -> int:
        """Write ``message`` and return the number of bytes written.

        Check :attr:`error` afterwards: a latched error means the output is
        incomplete and must not be transmitted.
        """
        if "Mime-Version" not in message.header:
            self.write_string("Mime-Version: 1.0\r\n")
        if "Date" not in message.header:
            self.write_header("Date", [message.format_date(self._clock())])
        self.write_headers(message.header)
        if self.error is not None:
            return self.bytes_written

        mixed = message.has_mixed_part()
        related = message.has_related_part()
        alternative = message.has_alternative_part()

        if mixed:
            self.open_multipart("mixed")
        if related:
            self.open_multipart("related")
        if alternative:
            self.open_multipart("alternative")

        for part in message.parts:
            if self.error is not None:
                return self.bytes_written
            self.write_part(part, message.charset)
        if alternative:
            self.close_multipart()

        self.add_files(message.embedded, is_attachment=False)
        if related:
            self.close_multipart()

        self.add_files(message.attachments, is_attachment=True)
        if mixed:
            self.close_multipart()

        if self.error is not None:
            logger.warning("Message serialization stopped after %d bytes: %s", self.bytes_written, self.error)
        return self.bytes_written


__all__ = ["MAX_DEPTH", "MessageWriter", "MultipartWriter", "make_boundary"]
