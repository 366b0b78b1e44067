# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Exception hierarchy for message building, serialization and delivery.

Every exception carries a ``code`` attribute with a stable, machine-readable
identifier so callers (CLI, delivery reports) can classify failures without
matching on message text.
"""

from __future__ import annotations


class MailError(Exception):
    """Base class for all errors raised by mime_mailer."""

    code = "mail_error"


class AddressError(MailError, ValueError):
    """Raised when a From/To/Cc/Bcc value does not parse as a mail address."""

    code = "invalid_address"

    def __init__(self, address: str, reason: str | None = None):
        detail = f": {reason}" if reason else ""
        super().__init__(f"invalid address {address!r}{detail}")
        self.address = address


class MissingFieldError(MailError, KeyError):
    """Raised when a required header (typically ``From``) was never set."""

    code = "missing_field"

    def __init__(self, field: str):
        super().__init__(f'invalid message, "{field}" field is absent')
        self.field = field

    def __str__(self) -> str:
        return str(self.args[0])


class AttachmentNotFoundError(MailError, FileNotFoundError):
    """Raised by attach/embed when the path does not exist."""

    code = "file_not_found"

    def __init__(self, path: str):
        super().__init__(f"file does not exist: {path}")
        self.path = path


class AttachmentAccessError(MailError, OSError):
    """Raised by attach/embed when the path exists but cannot be accessed."""

    code = "file_access"

    def __init__(self, path: str, reason: str):
        super().__init__(f"unable to access the file {path}: {reason}")
        self.path = path


class SerializationError(MailError, OSError):
    """Raised when writing a message failed part-way.

    ``bytes_written`` holds the number of bytes already handed to the sink;
    the output must not be transmitted.
    """

    code = "serialization_failed"

    def __init__(self, message: str, bytes_written: int = 0):
        super().__init__(message)
        self.bytes_written = bytes_written


class SendError(MailError):
    """Raised when the SMTP transport could not deliver a message."""

    code = "send_failed"

    def __init__(self, message: str, index: int | None = None):
        super().__init__(message)
        self.index = index


class VerificationError(MailError):
    """Raised when a verification code or confirmation token is rejected."""

    code = "verification_failed"

    def __init__(self, message: str, reason: str):
        super().__init__(message)
        self.reason = reason


__all__ = [
    "AddressError",
    "AttachmentAccessError",
    "AttachmentNotFoundError",
    "MailError",
    "MissingFieldError",
    "SendError",
    "SerializationError",
    "VerificationError",
]
