# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Background keep-alive for a long-lived SMTP sender."""

from __future__ import annotations

import asyncio

import aiosmtplib

from ..logger import get_logger
from .sender import SmtpSender

MAX_RETRIES = 5
MAX_BACKOFF = 30.0


class ConnectionMonitor:
    """Probe a sender with NOOP every ``interval`` seconds and redial on failure.

    Reconnection waits ``retry * 1s`` (capped at ``max_backoff``) before each
    attempt; after ``max_retries`` consecutive failures the monitor stops.
    """

    def __init__(
        self,
        sender: SmtpSender,
        interval: float,
        *,
        max_retries: int = MAX_RETRIES,
        max_backoff: float = MAX_BACKOFF,
    ):
        self.sender = sender
        self.interval = interval
        self.max_retries = max_retries
        self.max_backoff = max_backoff
        self.logger = get_logger("MimeMailer.monitor")
        self._task: asyncio.Task | None = None
        self._stop = asyncio.Event()

    @property
    def is_monitoring(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the monitoring task; a second call while running is a no-op."""
        if self.is_monitoring:
            self.logger.debug("Connection monitor already running")
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name="smtp-connection-monitor")
        self.logger.info("Connection monitor started (interval=%ss)", self.interval)

    async def stop(self) -> None:
        """Stop the monitoring task and wait for it to finish."""
        self._stop.set()
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        self.logger.info("Connection monitor stopped")

    async def _wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return ``True`` when stop was requested."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def _run(self) -> None:
        retry_count = 0
        while not await self._wait(self.interval):
            if await self.sender.is_connected():
                retry_count = 0
                continue

            self.logger.warning("SMTP connection check failed, reconnecting")
            backoff = min(retry_count * 1.0, self.max_backoff)
            if backoff and await self._wait(backoff):
                return
            try:
                await self.sender.dial()
            except (aiosmtplib.SMTPException, OSError) as exc:
                retry_count += 1
                self.logger.error("SMTP reconnection attempt %d failed: %s", retry_count, exc)
                if retry_count >= self.max_retries:
                    self.logger.error("Max reconnection retries exceeded, stopping monitor")
                    return
            else:
                self.logger.info("SMTP reconnection successful")
                retry_count = 0


__all__ = ["ConnectionMonitor", "MAX_BACKOFF", "MAX_RETRIES"]
