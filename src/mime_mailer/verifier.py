# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Email ownership verification through one-time codes and confirmation links.

Codes and tokens are kept in an :class:`~mime_mailer.cache.ExpiringCache`
and delivered with any :class:`~mime_mailer.smtp.Sender`. The message
itself is produced by a caller supplied ``build_email(email, data)``
callable, ``data`` being the code or token to embed.
"""

from __future__ import annotations

import asyncio
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from .address import validate_format
from .cache import ExpiringCache, utcnow
from .config import VerifierConfig
from .errors import MailError, VerificationError
from .logger import get_logger
from .message import Message
from .smtp import Sender, SmtpSender

NUMBERS = "0123456789"
UPPER_LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
LOWER_LETTERS = "abcdefghijklmnopqrstuvwxyz"
ALPHANUMERIC = NUMBERS + UPPER_LETTERS + LOWER_LETTERS

EmailBuilder = Callable[[str, str], Message]


def generate_secure_code(length: int, charset: str) -> str:
    """Return ``length`` characters drawn from ``charset`` with a CSPRNG."""
    return "".join(secrets.choice(charset) for _ in range(length))


def generate_number_code(length: int) -> str:
    if length <= 0:
        raise ValueError("code length must be positive")
    return generate_secure_code(length, NUMBERS)


def generate_random_token(length: int) -> str:
    if length <= 0:
        raise ValueError("token length must be positive")
    return generate_secure_code(length, ALPHANUMERIC)


@dataclass
class VerificationCode:
    """A pending code or token bound to an email address."""

    email: str
    code: str
    expires_at: datetime
    used: bool = False

    def expiry(self) -> datetime:
        return self.expires_at


class Verifier:
    """Send and check verification codes and confirmation links.

    Example::

        verifier = Verifier(VerifierConfig(smtp=SmtpConfig(host="smtp.example.com")))
        code = await verifier.send_verification_code("bob@example.com", build_email)
        await verifier.verify_code("bob@example.com", code)
    """

    def __init__(
        self,
        config: VerifierConfig,
        sender: Sender | None = None,
        *,
        cache: ExpiringCache[VerificationCode] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config
        self._owns_sender = sender is None
        self.sender = sender or SmtpSender(config.smtp)
        self._clock = clock
        self.cache = cache or ExpiringCache(config.cache_cleanup, clock=clock)
        self.logger = get_logger("MimeMailer.verifier")
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        """Start the periodic removal of expired codes."""
        self.cache.start()

    async def stop(self) -> None:
        """Stop the cleanup loop and close the SMTP sender created by this verifier."""
        await self.cache.stop()
        if self._owns_sender:
            await self.sender.close()

    def validate_format(self, email: str) -> bool:
        return validate_format(email)

    def _new_entry(self, email: str, code: str) -> VerificationCode:
        expires_at = self._clock() + timedelta(seconds=self.config.code_expiry)
        return VerificationCode(email=email, code=code, expires_at=expires_at)

    async def _deliver(self, email: str, data: str, build_email: EmailBuilder) -> None:
        msg = build_email(email, data)
        from_addr = self.config.smtp.from_addr or msg.get_from()
        async with self._lock:
            await self.sender.send(from_addr, [email], msg)

    async def send_verification_code(self, email: str, build_email: EmailBuilder) -> str:
        """Generate a numeric code, remember it and mail it to ``email``.

        Returns:
            The generated code.

        Raises:
            VerificationError: ``invalid_email`` for a malformed address,
                ``send_failed`` when building or sending the email failed.
        """
        if not self.validate_format(email):
            raise VerificationError(f"email format is invalid: {email!r}", "invalid_email")

        code = generate_number_code(self.config.code_length)
        self.cache.set(email, self._new_entry(email, code))
        try:
            await self._deliver(email, code, build_email)
        except (MailError, OSError, ValueError) as exc:
            self.cache.delete(email)
            self.logger.error("Verification code for %s not sent: %s", email, exc)
            raise VerificationError("send email failed", "send_failed") from exc
        return code

    async def verify_code(self, email: str, code: str) -> None:
        """Accept ``code`` for ``email`` once, raising :class:`VerificationError` otherwise."""
        entry = self.cache.get(email)
        if entry is None:
            raise VerificationError("verification code not found or expired", "not_found")
        if self.cache.is_value_expired(entry):
            self.cache.delete(email)
            raise VerificationError("verification code has expired", "expired")
        if entry.used:
            raise VerificationError("verification code already used", "used")
        if entry.code != code:
            raise VerificationError("verification code is invalid", "mismatch")
        entry.used = True
        self.cache.set(email, entry)

    async def send_confirmation_link(self, email: str, build_email: EmailBuilder) -> str:
        """Generate a token, remember it and mail it to ``email``.

        ``build_email`` receives the token and is expected to turn it into a
        link pointing back to the application.
        """
        if not self.validate_format(email):
            raise VerificationError(f"email format is invalid: {email!r}", "invalid_email")

        token = generate_random_token(self.config.token_length)
        self.cache.set(token, self._new_entry(email, token))
        try:
            await self._deliver(email, token, build_email)
        except (MailError, OSError, ValueError) as exc:
            self.cache.delete(token)
            self.logger.error("Confirmation link for %s not sent: %s", email, exc)
            raise VerificationError("send email failed", "send_failed") from exc
        return token

    async def verify_confirmation_link(self, token: str) -> str:
        """Consume ``token`` and return the email address it confirms."""
        entry = self.cache.get(token)
        if entry is None:
            raise VerificationError("invalid or expired confirmation token", "not_found")
        if self.cache.is_value_expired(entry):
            raise VerificationError("confirmation link expired", "expired")
        if entry.used:
            raise VerificationError("confirmation link already used", "used")
        if entry.code != token:
            raise VerificationError("confirmation link is invalid", "mismatch")
        entry.used = True
        self.cache.set(token, entry)
        return entry.email


__all__ = [
    "ALPHANUMERIC",
    "LOWER_LETTERS",
    "NUMBERS",
    "UPPER_LETTERS",
    "EmailBuilder",
    "VerificationCode",
    "Verifier",
    "generate_number_code",
    "generate_random_token",
    "generate_secure_code",
    "validate_format",
]
