# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""In-memory message model.

A :class:`Message` aggregates header fields, alternative body parts,
embedded resources and attachments. It is mutated by the caller and then
handed to :class:`~mime_mailer.writer.MessageWriter`, which streams the
RFC 5322 / MIME representation to a byte sink.

Example::

    msg = Message()
    msg.set_from("alice@example.com", "Alice")
    msg.set_to(["bob@example.com"])
    msg.set_subject("Hello")
    msg.set_body("text/plain", "Hi Bob")
    msg.add_alternative("text/html", "<p>Hi Bob</p>")
    msg.attach("/tmp/report.pdf")
    msg.write_to(sys.stdout.buffer)
"""

from __future__ import annotations

import io
from datetime import datetime
from email.utils import format_datetime
from pathlib import Path
from typing import Iterable, Mapping

from .address import add_address, format_address, parse_address
from .encoding import B_ENCODING, Q_ENCODING, ByteSink, Encoding
from .errors import AttachmentAccessError, AttachmentNotFoundError, MissingFieldError, SerializationError
from .headers import Header
from .parts import ContentProducer, File, Part, copier, file_copier
from .writer import MessageWriter

DEFAULT_CHARSET = "UTF-8"
RECIPIENT_FIELDS = ("To", "Cc", "Bcc")


class Message:
    """Outbound email message."""

    def __init__(
        self,
        *,
        charset: str = DEFAULT_CHARSET,
        encoding: Encoding | str = Encoding.QUOTED_PRINTABLE,
    ):
        self.header = Header()
        self.parts: list[Part] = []
        self.attachments: list[File] = []
        self.embedded: list[File] = []
        self.charset = charset
        self.encoding = Encoding(encoding)
        # Header words follow the body encoding: B words for base64 bodies.
        self.header_encoder = B_ENCODING if self.encoding is Encoding.BASE64 else Q_ENCODING

    def __repr__(self) -> str:
        return (
            f"Message(headers={list(self.header)!r}, parts={len(self.parts)}, "
            f"embedded={len(self.embedded)}, attachments={len(self.attachments)})"
        )

    def reset(self) -> None:
        """Clear headers, parts and files, keeping charset and encoding."""
        self.header.clear()
        self.parts = []
        self.attachments = []
        self.embedded = []

    # ------------------------------------------------------------------ headers
    def set_header(self, key: str, *values: str) -> None:
        """Set a header field, encoding each value as needed.

        For ``From`` the values are ``(address, display_name)``.
        """
        if key.lower() == "from":
            if len(values) < 2:
                raise ValueError("From requires an address and a display name")
            self.set_address_header(key, values[0], values[1])
            return
        self.header[key] = [self.encode_string(value) for value in values]

    def set_address_header(self, field: str, address: str, name: str = "") -> None:
        """Set ``field`` to a single formatted ``name <address>`` value."""
        self.header[field] = [self.format_address(address, name)]

    def set_from(self, address: str, name: str = "") -> None:
        self.set_address_header("From", address, name)

    def set_to(self, addresses: Iterable[str]) -> None:
        self.set_header("To", *addresses)

    def set_subject(self, subject: str) -> None:
        self.set_header("Subject", subject)

    def set_date_header(self, field: str, when: datetime) -> None:
        self.header[field] = [self.format_date(when)]

    def get_header(self, field: str) -> list[str]:
        return self.header.get(field, [])

    def encode_string(self, value: str) -> str:
        return self.header_encoder.encode(self.charset, value)

    def format_address(self, address: str, name: str = "") -> str:
        return format_address(address, name, self.charset, self.header_encoder)

    @staticmethod
    def format_date(when: datetime) -> str:
        """Format ``when`` as RFC 1123 with numeric zone."""
        if when.tzinfo is None:
            when = when.astimezone()
        return format_datetime(when)

    # --------------------------------------------------------------- envelope
    def get_from(self) -> str:
        """Return the bare sender address.

        Raises:
            MissingFieldError: If ``From`` was never set.
            AddressError: If the stored value is malformed.
        """
        values = self.header.get("From")
        if not values:
            raise MissingFieldError("From")
        return parse_address(values[0])

    def get_recipients(self) -> list[str]:
        """Return deduplicated bare addresses from To, Cc and Bcc, in order."""
        recipients: list[str] = []
        for field in RECIPIENT_FIELDS:
            for value in self.header.get(field, []):
                add_address(recipients, parse_address(value))
        return recipients

    # ------------------------------------------------------------------ bodies
    def set_body(self, content_type: str, body: str | bytes, *, encoding: Encoding | str | None = None) -> None:
        """Replace all body parts with a single part."""
        self.parts = [self._make_part(content_type, copier(body, self.charset), encoding)]

    def add_alternative(self, content_type: str, body: str | bytes, *, encoding: Encoding | str | None = None) -> None:
        """Append an alternative body part.

        Alternatives should go from simplest to richest: add the plain text
        part before the HTML one.
        """
        self.add_alternative_writer(content_type, copier(body, self.charset), encoding=encoding)

    def add_alternative_writer(
        self,
        content_type: str,
        producer: ContentProducer,
        *,
        encoding: Encoding | str | None = None,
    ) -> None:
        """Append an alternative part whose content is written by ``producer``."""
        self.parts.append(self._make_part(content_type, producer, encoding))

    def _make_part(self, content_type: str, producer: ContentProducer, encoding: Encoding | str | None) -> Part:
        return Part(
            content_type=content_type,
            copier=producer,
            encoding=Encoding(encoding) if encoding is not None else self.encoding,
        )

    # ------------------------------------------------------------------- files
    def attach(
        self,
        path: str | Path,
        *,
        name: str | None = None,
        headers: Mapping[str, list[str] | str] | None = None,
        copy_func: ContentProducer | None = None,
    ) -> File:
        """Attach the file at ``path``; the list is left untouched on failure."""
        attached = self._make_file(path, name, headers, copy_func)
        self.attachments.append(attached)
        return attached

    def embed(
        self,
        path: str | Path,
        *,
        name: str | None = None,
        headers: Mapping[str, list[str] | str] | None = None,
        copy_func: ContentProducer | None = None,
    ) -> File:
        """Embed the file at ``path``, referenced from bodies as ``cid:<name>``."""
        embedded = self._make_file(path, name, headers, copy_func)
        self.embedded.append(embedded)
        return embedded

    @staticmethod
    def _make_file(
        path: str | Path,
        name: str | None,
        headers: Mapping[str, list[str] | str] | None,
        copy_func: ContentProducer | None,
    ) -> File:
        file_path = Path(path)
        try:
            file_path.stat()
        except FileNotFoundError as exc:
            raise AttachmentNotFoundError(str(path)) from exc
        except OSError as exc:
            raise AttachmentAccessError(str(path), exc.strerror or str(exc)) from exc

        result = File(name=name or file_path.name, copy_func=copy_func or file_copier(file_path))
        if headers:
            result.update_headers(headers)
        return result

    # -------------------------------------------------------------- structure
    def has_mixed_part(self) -> bool:
        return (len(self.parts) > 0 and len(self.attachments) > 0) or len(self.attachments) > 1

    def has_related_part(self) -> bool:
        return (len(self.parts) > 0 and len(self.embedded) > 0) or len(self.embedded) > 1

    def has_alternative_part(self) -> bool:
        return len(self.parts) > 1

    # ---------------------------------------------------------- serialization
    def write_to(self, sink: ByteSink, **writer_options) -> int:
        """Stream the message to ``sink`` and return the number of bytes written.

        Raises:
            SerializationError: If a producer or the sink failed; the partial
                byte count is available as ``bytes_written``.
        """
        writer = MessageWriter(sink, **writer_options)
        written = writer.write_message(self)
        if writer.error is not None:
            raise SerializationError(
                f"could not write message: {writer.error}", bytes_written=written
            ) from writer.error
        return written

    def as_bytes(self, **writer_options) -> bytes:
        """Return the whole serialized message."""
        buffer = io.BytesIO()
        self.write_to(buffer, **writer_options)
        return buffer.getvalue()


__all__ = ["DEFAULT_CHARSET", "Message"]
