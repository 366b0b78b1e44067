# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Build :class:`Message` objects from JSON-like payloads."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .encoding import Encoding
from .message import DEFAULT_CHARSET, Message


class FilePayload(BaseModel):
    """Attachment or embedded resource read from the local filesystem.

    Attributes:
        path: Path of the file on disk.
        filename: Name shown to the recipient (defaults to the file name).
        headers: MIME header overrides for the part.
    """
    path: str
    filename: str | None = None
    headers: dict[str, str | list[str]] | None = None


class AlternativePayload(BaseModel):
    """Additional body representation appended after the main body."""
    content_type: str = Field(default="html")
    body: str = Field(default="")
    encoding: Encoding | None = None


class MessagePayload(BaseModel):
    """Message description accepted by :func:`build_message`.

    Attributes:
        from_addr: Sender email address (aliased as "from" in JSON).
        from_name: Sender display name.
        to: Recipient address(es), string or list.
        cc: CC address(es), string or list.
        bcc: BCC address(es), string or list; never written to the headers on the wire.
        reply_to: Reply-To address.
        subject: Email subject.
        body: Main body content.
        content_type: Main body content type ("plain", "html" or a full MIME type).
        alternatives: Extra body representations, simplest first.
        headers: Additional custom email headers.
        message_id: Custom Message-ID header.
        attachments: Files delivered as attachments.
        embedded: Files referenced from bodies through ``cid:`` URIs.
        charset: Message charset.
        encoding: Default body transfer encoding.
    """
    model_config = ConfigDict(populate_by_name=True)
    from_addr: str = Field(alias="from")
    from_name: str = ""
    to: list[str] | str
    cc: list[str] | str | None = None
    bcc: list[str] | str | None = None
    reply_to: str | None = None
    subject: str = Field(min_length=1)
    body: str = Field(default="")
    content_type: str = Field(default="plain")
    alternatives: list[AlternativePayload] | None = None
    headers: dict[str, Any] | None = None
    message_id: str | None = None
    attachments: list[FilePayload] | None = None
    embedded: list[FilePayload] | None = None
    charset: str = DEFAULT_CHARSET
    encoding: Literal["quoted-printable", "base64", "8bit"] = Encoding.QUOTED_PRINTABLE.value

    @field_validator("headers")
    @classmethod
    def sender_not_in_headers(cls, v: dict[str, Any] | None) -> dict[str, Any] | None:
        """Reject a From override; the sender comes from from_addr and from_name."""
        if v and any(key.lower() == "from" for key in v):
            raise ValueError('set the sender with "from" and "from_name", not in headers')
        return v


def _mime_type(content_type: str) -> str:
    if "/" in content_type:
        return content_type
    return "text/html" if content_type == "html" else "text/plain"


def _split_addresses(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(addr).strip() for addr in value if addr]


def build_message(payload: MessagePayload | dict[str, Any]) -> Message:
    """Translate ``payload`` into a :class:`Message`.

    Raises:
        pydantic.ValidationError: If a dict payload is malformed.
        KeyError: If no ``to`` recipient remains after splitting.
        AttachmentNotFoundError, AttachmentAccessError: For missing files.
    """
    if not isinstance(payload, MessagePayload):
        payload = MessagePayload.model_validate(payload)

    msg = Message(charset=payload.charset, encoding=payload.encoding)
    msg.set_from(payload.from_addr, payload.from_name)
    to = _split_addresses(payload.to)
    if not to:
        raise KeyError("to")
    msg.set_to(to)
    if cc := _split_addresses(payload.cc):
        msg.set_header("Cc", *cc)
    if bcc := _split_addresses(payload.bcc):
        msg.set_header("Bcc", *bcc)
    if payload.reply_to:
        msg.set_header("Reply-To", payload.reply_to)
    if payload.message_id:
        msg.set_header("Message-ID", payload.message_id)
    msg.set_subject(payload.subject)
    for header, value in (payload.headers or {}).items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            msg.set_header(header, *(str(item) for item in value))
        else:
            msg.set_header(header, str(value))

    msg.set_body(_mime_type(payload.content_type), payload.body)
    for alternative in payload.alternatives or []:
        msg.add_alternative(_mime_type(alternative.content_type), alternative.body, encoding=alternative.encoding)

    for item in payload.embedded or []:
        msg.embed(item.path, name=item.filename, headers=item.headers)
    for item in payload.attachments or []:
        msg.attach(item.path, name=item.filename, headers=item.headers)
    return msg


__all__ = ["AlternativePayload", "FilePayload", "MessagePayload", "build_message"]
