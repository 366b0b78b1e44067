# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Bounded asyncio-friendly pool of SMTP senders."""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from ..config import SmtpConfig
from ..errors import SendError
from ..logger import get_logger
from ..metrics import MailMetrics
from .sender import SmtpSender


class SenderPool:
    """Reuse up to ``size`` connected senders to reduce connection overhead.

    Idle senders older than ``ttl`` seconds, or failing the NOOP probe, are
    closed and replaced on the next :meth:`acquire`.
    """

    def __init__(
        self,
        config: SmtpConfig,
        size: int = 3,
        *,
        ttl: int = 300,
        acquire_timeout: float = 30.0,
        metrics: MailMetrics | None = None,
    ):
        if size <= 0:
            raise ValueError("pool size must be positive")
        self.config = config
        self.size = size
        self.ttl = ttl
        self.acquire_timeout = acquire_timeout
        self.metrics = metrics or MailMetrics()
        self.logger = get_logger("MimeMailer.pool")
        self.idle: asyncio.Queue[tuple[SmtpSender, float]] = asyncio.Queue(maxsize=size)
        self.created = 0
        self.lock = asyncio.Lock()
        self.closed = False
        self.available = asyncio.Condition()
        self._changes = 0

    def _new_sender(self) -> SmtpSender:
        return SmtpSender(self.config, metrics=self.metrics)

    async def _create(self) -> SmtpSender:
        sender = self._new_sender()
        await sender.dial()
        return sender

    async def _notify(self) -> None:
        """Wake acquirers waiting for an idle sender or a free slot."""
        async with self.available:
            self._changes += 1
            self.available.notify_all()

    async def _discard(self, sender: SmtpSender) -> None:
        await sender.close()
        async with self.lock:
            self.created -= 1
        await self._notify()

    async def _take_idle(self) -> SmtpSender | None:
        while not self.idle.empty():
            sender, last_used = self.idle.get_nowait()
            fresh_enough = (time.time() - last_used) < self.ttl
            if fresh_enough and await sender.is_connected():
                return sender
            self.logger.debug("Replacing stale pooled SMTP sender")
            await self._discard(sender)
        return None

    async def _reserve_slot(self) -> bool:
        async with self.lock:
            if self.created < self.size:
                self.created += 1
                return True
        return False

    async def acquire(self) -> SmtpSender:
        """Return a connected sender, waiting for a free one when the pool is full.

        While waiting, both a released sender and a slot freed by a discarded
        one end the wait.

        Raises:
            SendError: If no sender becomes available within ``acquire_timeout``.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.acquire_timeout
        while True:
            if self.closed:
                raise SendError("sender pool is closed")
            seen = self._changes
            sender = await self._take_idle()
            if sender is not None:
                return sender

            if await self._reserve_slot():
                try:
                    return await self._create()
                except BaseException:
                    async with self.lock:
                        self.created -= 1
                    await self._notify()
                    raise

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise SendError("no available sender in pool")
            try:
                async with self.available:
                    await asyncio.wait_for(
                        self.available.wait_for(lambda: self._changes != seen),
                        timeout=remaining,
                    )
            except asyncio.TimeoutError as exc:
                raise SendError("no available sender in pool") from exc

    async def release(self, sender: SmtpSender) -> None:
        """Give ``sender`` back; broken senders and overflow are closed."""
        if self.closed or not await sender.is_connected():
            await self._discard(sender)
            return
        try:
            self.idle.put_nowait((sender, time.time()))
        except asyncio.QueueFull:
            await self._discard(sender)
            return
        await self._notify()

    @asynccontextmanager
    async def sender(self) -> AsyncIterator[SmtpSender]:
        """Borrow a sender for the duration of the ``async with`` block."""
        sender = await self.acquire()
        try:
            yield sender
        finally:
            await self.release(sender)

    async def cleanup(self) -> None:
        """Close idle senders that expired or no longer answer NOOP."""
        now = time.time()
        keep: list[tuple[SmtpSender, float]] = []
        expired: list[SmtpSender] = []
        while not self.idle.empty():
            sender, last_used = self.idle.get_nowait()
            if (now - last_used) > self.ttl or not await sender.is_connected():
                expired.append(sender)
            else:
                keep.append((sender, last_used))

        for entry in keep:
            self.idle.put_nowait(entry)
        if keep:
            await self._notify()
        for sender in expired:
            await self._discard(sender)
        if expired:
            self.logger.debug("Closed %d idle SMTP sender(s)", len(expired))

    async def close(self) -> None:
        """Close every idle sender. Borrowed senders are closed on release."""
        self.closed = True
        while not self.idle.empty():
            sender, _ = self.idle.get_nowait()
            await self._discard(sender)
        await self._notify()


__all__ = ["SenderPool"]
