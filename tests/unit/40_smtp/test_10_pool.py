# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Unit tests for SenderPool with mocked SMTP connections."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from mime_mailer.config import SmtpConfig
from mime_mailer.errors import SendError
from mime_mailer.smtp import SenderPool


def _smtp_mock() -> AsyncMock:
    mock_smtp = AsyncMock()
    mock_smtp.noop = AsyncMock(return_value=(250, "OK"))
    return mock_smtp


@pytest.fixture
def smtp_class():
    """Patch aiosmtplib.SMTP so every connection gets its own mock."""
    with patch("mime_mailer.smtp.sender.aiosmtplib.SMTP") as mock_smtp_class:
        mock_smtp_class.side_effect = lambda **kwargs: _smtp_mock()
        yield mock_smtp_class


class TestSenderPool:
    """Tests for the bounded sender pool."""

    @pytest.fixture
    def pool(self, smtp_class):
        """Create a fresh pool for each test."""
        return SenderPool(SmtpConfig(host="smtp.example.com"), size=2, ttl=300, acquire_timeout=0.05)

    def test_init_rejects_empty_pool(self):
        with pytest.raises(ValueError):
            SenderPool(SmtpConfig(), size=0)

    def test_init_defaults(self):
        pool = SenderPool(SmtpConfig())
        assert pool.size == 3
        assert pool.ttl == 300
        assert pool.created == 0

    async def test_acquire_creates_connected_sender(self, pool, smtp_class):
        """acquire() dials a new sender when none is idle."""
        sender = await pool.acquire()

        assert await sender.is_connected()
        assert pool.created == 1
        assert smtp_class.call_count == 1

    async def test_release_then_reuse(self, pool, smtp_class):
        """A released sender is handed out again."""
        sender = await pool.acquire()
        await pool.release(sender)

        assert pool.idle.qsize() == 1
        assert await pool.acquire() is sender
        assert smtp_class.call_count == 1

    async def test_release_discards_dead_sender(self, pool):
        """Senders failing NOOP are closed instead of pooled."""
        sender = await pool.acquire()
        sender._smtp.noop.return_value = (421, "closing")

        await pool.release(sender)

        assert pool.idle.qsize() == 0
        assert pool.created == 0

    async def test_expired_sender_replaced(self, pool, smtp_class):
        """Idle senders past the TTL are replaced on acquire."""
        first = await pool.acquire()
        await pool.release(first)
        pool.ttl = -1

        second = await pool.acquire()

        assert second is not first
        assert smtp_class.call_count == 2
        assert pool.created == 1

    async def test_acquire_times_out_when_exhausted(self, pool):
        """A full pool raises once acquire_timeout elapses."""
        await pool.acquire()
        await pool.acquire()

        with pytest.raises(SendError):
            await pool.acquire()

    async def test_waiting_acquire_gets_released_sender(self, smtp_class):
        """A waiter receives the next released sender."""
        pool = SenderPool(SmtpConfig(), size=1, acquire_timeout=1.0)
        sender = await pool.acquire()
        waiter = asyncio.create_task(pool.acquire())
        await asyncio.sleep(0)

        await pool.release(sender)

        assert await waiter is sender
        assert smtp_class.call_count == 1

    async def test_waiter_takes_slot_freed_by_broken_sender(self, smtp_class):
        """A waiter opens a new connection when a broken sender is discarded."""
        pool = SenderPool(SmtpConfig(), size=1, acquire_timeout=1.0)
        sender = await pool.acquire()
        waiter = asyncio.create_task(pool.acquire())
        await asyncio.sleep(0.01)
        assert not waiter.done()

        sender._smtp.noop.return_value = (421, "closing")
        await pool.release(sender)

        replacement = await waiter
        assert replacement is not sender
        assert await replacement.is_connected()
        assert pool.created == 1
        assert smtp_class.call_count == 2

    async def test_failed_dial_frees_slot(self, smtp_class):
        """A connection error does not consume pool capacity."""
        pool = SenderPool(SmtpConfig(), size=1, acquire_timeout=0.05)
        broken = _smtp_mock()
        broken.connect.side_effect = OSError("connection refused")
        smtp_class.side_effect = [broken, _smtp_mock()]

        with pytest.raises(OSError):
            await pool.acquire()

        assert pool.created == 0
        assert await (await pool.acquire()).is_connected()

    async def test_sender_context_manager(self, pool):
        """sender() returns the borrowed sender to the pool."""
        async with pool.sender() as sender:
            assert pool.idle.qsize() == 0
        assert pool.idle.qsize() == 1
        assert await pool.acquire() is sender

    async def test_cleanup_closes_expired(self, pool):
        """cleanup() closes idle senders past the TTL."""
        sender = await pool.acquire()
        smtp = sender._smtp
        await pool.release(sender)
        pool.ttl = -1

        await pool.cleanup()

        assert pool.idle.qsize() == 0
        assert pool.created == 0
        smtp.quit.assert_called_once()

    async def test_cleanup_keeps_fresh(self, pool):
        sender = await pool.acquire()
        await pool.release(sender)

        await pool.cleanup()

        assert pool.idle.qsize() == 1

    async def test_close(self, pool):
        """close() empties the pool and refuses further use."""
        idle = await pool.acquire()
        borrowed = await pool.acquire()
        await pool.release(idle)

        await pool.close()

        assert pool.idle.qsize() == 0
        with pytest.raises(SendError):
            await pool.acquire()
        await pool.release(borrowed)
        assert pool.created == 0
        assert await borrowed.is_connected() is False
