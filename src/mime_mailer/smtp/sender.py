# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""SMTP sender built on aiosmtplib.

The MIME engine only needs something that accepts a byte source; this
module provides that capability over an authenticated SMTP session.
STARTTLS negotiation and AUTH mechanism selection are left to aiosmtplib.
"""

from __future__ import annotations

import asyncio
import io
from typing import Protocol, Sequence

import aiosmtplib

from ..config import SmtpConfig
from ..encoding import ByteSink
from ..errors import MailError, SendError
from ..logger import get_logger
from ..message import Message
from ..metrics import MailMetrics

# Upper bound for a whole MAIL/RCPT/DATA exchange, large attachments included.
SEND_TIMEOUT = 30.0


class ByteSource(Protocol):
    """Something able to write its serialized bytes to a sink."""

    def write_to(self, sink: ByteSink) -> int: ...


class Sender(Protocol):
    """Transport capability consumed by higher-level workflows."""

    async def send(self, from_addr: str, to_addrs: Sequence[str], source: ByteSource) -> None: ...


class SmtpSender:
    """Deliver messages over a single, lazily (re)opened SMTP connection.

    Sends are serialized on the connection. Use as an async context manager
    to connect on entry and quit on exit::

        async with SmtpSender(SmtpConfig(host="smtp.example.com", port=465)) as sender:
            await sender.send_messages(msg)
    """

    def __init__(
        self,
        config: SmtpConfig,
        *,
        metrics: MailMetrics | None = None,
        logger=None,
    ):
        self.config = config
        self.metrics = metrics or MailMetrics()
        self.logger = logger or get_logger("MimeMailer.smtp")
        self._smtp: aiosmtplib.SMTP | None = None
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> SmtpSender:
        await self.dial()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # --------------------------------------------------------------- connection
    async def _connect(self) -> aiosmtplib.SMTP:
        """Open a new SMTP connection and authenticate if needed."""
        cfg = self.config
        implicit_tls = cfg.implicit_tls
        smtp = aiosmtplib.SMTP(
            hostname=cfg.host,
            port=cfg.port,
            use_tls=implicit_tls,
            # Implicit TLS and STARTTLS are mutually exclusive.
            start_tls=False if implicit_tls else cfg.start_tls,
            local_hostname=cfg.local_hostname,
            timeout=cfg.timeout,
        )

        async def _do_connect():
            await smtp.connect()
            if cfg.username and cfg.password:
                await smtp.login(cfg.username, cfg.password)

        self.logger.debug("Connecting to %s:%s (implicit_tls=%s)", cfg.host, cfg.port, implicit_tls)
        await asyncio.wait_for(_do_connect(), timeout=cfg.timeout + 5.0)
        return smtp

    async def _ensure_connected(self) -> aiosmtplib.SMTP:
        if self._smtp is None or not await self.is_connected():
            await self._quit_quietly()
            self._smtp = await self._connect()
        return self._smtp

    async def dial(self) -> None:
        """Connect unless an open, responsive connection already exists."""
        async with self._lock:
            await self._ensure_connected()

    async def noop(self) -> None:
        """Send NOOP; raise :class:`SendError` when the connection is unusable."""
        if self._smtp is None:
            raise SendError("SMTP client is not connected")
        try:
            code, _ = await asyncio.wait_for(self._smtp.noop(), timeout=5.0)
        except (aiosmtplib.SMTPException, OSError) as exc:
            raise SendError(f"NOOP failed, connection may be closed: {exc}") from exc
        if code != 250:
            raise SendError(f"NOOP failed with code {code}")

    async def is_connected(self) -> bool:
        """Return ``True`` when the connection responds correctly to NOOP."""
        if self._smtp is None:
            return False
        try:
            await self.noop()
        except SendError:
            return False
        return True

    async def _quit_quietly(self) -> None:
        smtp, self._smtp = self._smtp, None
        if smtp is None:
            return
        try:
            await smtp.quit()
        except (aiosmtplib.SMTPException, OSError) as exc:
            self.logger.debug("Ignoring error while closing SMTP connection: %s", exc)

    async def close(self) -> None:
        """Quit the SMTP session if one is open."""
        async with self._lock:
            await self._quit_quietly()

    # ------------------------------------------------------------------ sending
    async def send(self, from_addr: str, to_addrs: Sequence[str], source: ByteSource) -> None:
        """Transmit ``source`` from ``from_addr`` to every address in ``to_addrs``.

        The source is fully serialized before the SMTP transaction starts, so
        a serialization failure never reaches the server.

        Raises:
            SerializationError: If ``source`` could not be written.
            SendError: On connection or protocol failures.
        """
        buffer = io.BytesIO()
        source.write_to(buffer)
        data = buffer.getvalue()

        async with self._lock:
            try:
                smtp = await self._ensure_connected()
                async with asyncio.timeout(SEND_TIMEOUT):
                    await smtp.sendmail(from_addr, list(to_addrs), data)
            except (aiosmtplib.SMTPException, OSError) as exc:
                self.metrics.inc_error(self.config.host)
                self.logger.error("Sending to %s via %s failed: %s", ", ".join(to_addrs), self.config.host, exc)
                raise SendError(str(exc)) from exc

        self.metrics.inc_sent(self.config.host)
        self.metrics.add_bytes(len(data))
        self.logger.debug("Sent %d bytes to %d recipient(s)", len(data), len(to_addrs))

    async def send_messages(self, *messages: Message, use_config_from: bool = False) -> None:
        """Send each message to the recipients listed in its To/Cc/Bcc.

        Args:
            messages: Messages to deliver, in order.
            use_config_from: Use the configured ``from_addr`` as envelope sender
                instead of the message's ``From`` header.

        Raises:
            SendError: With ``index`` set to the 1-based position of the failing message.
        """
        for index, msg in enumerate(messages, start=1):
            try:
                from_addr = self.config.from_addr if use_config_from else msg.get_from()
                if not from_addr:
                    raise SendError("no envelope sender configured")
                await self.send(from_addr, msg.get_recipients(), msg)
            except MailError as exc:
                raise SendError(f"could not send email {index}: {exc}", index=index) from exc

    async def send_bytes(self, to_addrs: Sequence[str], data: bytes, from_addr: str | None = None) -> None:
        """Send an already serialized message."""
        sender = from_addr or self.config.from_addr
        if not sender:
            raise SendError("no envelope sender configured")
        await self.send(sender, to_addrs, _RawSource(data))


class _RawSource:
    def __init__(self, data: bytes):
        self._data = data

    def write_to(self, sink: ByteSink) -> int:
        sink.write(self._data)
        return len(self._data)


__all__ = ["ByteSource", "SEND_TIMEOUT", "Sender", "SmtpSender"]
