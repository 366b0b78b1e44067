# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Outbound email composition and delivery.

This package builds RFC 5322 / MIME messages and streams them to any byte sink:

- Message model with headers, alternative bodies, embedded resources and attachments
- Streaming writer nesting multipart/mixed, related and alternative containers
- RFC 2047 encoded words and header folding
- Base64 and quoted-printable body encoders
- SMTP delivery over aiosmtplib, with a sender pool and a connection monitor
- Email verification through one-time codes and confirmation links

Example:
    Compose a message and write it to a file::

        from mime_mailer import Message

        msg = Message()
        msg.set_from("alice@example.com", "Alice")
        msg.set_to(["bob@example.com"])
        msg.set_subject("Quarterly report")
        msg.set_body("text/plain", "Report attached.")
        msg.attach("report.pdf")
        with open("message.eml", "wb") as fp:
            msg.write_to(fp)

Authors:
    Softwell S.r.l.
"""

from .encoding import Encoding
from .errors import (
    AddressError,
    AttachmentAccessError,
    AttachmentNotFoundError,
    MailError,
    MissingFieldError,
    SendError,
    SerializationError,
    VerificationError,
)
from .headers import Header
from .message import Message
from .parts import File, Part
from .writer import MessageWriter

__version__ = "0.1.0"

__all__ = [
    "AddressError",
    "AttachmentAccessError",
    "AttachmentNotFoundError",
    "Encoding",
    "File",
    "Header",
    "MailError",
    "Message",
    "MessageWriter",
    "MissingFieldError",
    "Part",
    "SendError",
    "SerializationError",
    "VerificationError",
]
