# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""In-memory key-value store whose entries carry their own expiry time."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Callable, Generic, Hashable, Protocol, TypeVar

from .logger import get_logger


class Expiring(Protocol):
    def expiry(self) -> datetime: ...


T = TypeVar("T", bound=Expiring)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExpiringCache(Generic[T]):
    """Cache of values exposing ``expiry()``.

    Expired values stay readable until :meth:`purge_expired` removes them,
    either called directly or by the background loop started with
    :meth:`start` when ``cleanup_interval`` is positive.
    """

    def __init__(self, cleanup_interval: float = 0, *, clock: Callable[[], datetime] = utcnow):
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._data: dict[Hashable, T] = {}
        self._task: asyncio.Task | None = None
        self._stop = asyncio.Event()
        self.logger = get_logger("MimeMailer.cache")

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._data

    def set(self, key: Hashable, value: T) -> None:
        self._data[key] = value

    def get(self, key: Hashable) -> T | None:
        return self._data.get(key)

    def delete(self, key: Hashable) -> None:
        self._data.pop(key, None)

    def is_value_expired(self, value: T) -> bool:
        return self._clock() > value.expiry()

    def is_expired(self, key: Hashable) -> bool:
        """Return ``True`` if ``key`` is present and expired; absent keys are not expired."""
        value = self._data.get(key)
        if value is None:
            return False
        return self.is_value_expired(value)

    def purge_expired(self) -> int:
        """Remove expired entries and return how many were dropped."""
        expired = [key for key, value in list(self._data.items()) if self.is_value_expired(value)]
        for key in expired:
            self._data.pop(key, None)
        if expired:
            self.logger.debug("Purged %d expired cache entries", len(expired))
        return len(expired)

    # ------------------------------------------------------------ cleanup loop
    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the periodic purge; does nothing when the interval is not positive."""
        if self.cleanup_interval <= 0 or self.is_running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._cleanup_loop(), name="expiring-cache-cleanup")

    async def stop(self) -> None:
        self._stop.set()
        task, self._task = self._task, None
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def _cleanup_loop(self) -> None:
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.cleanup_interval)
            except asyncio.TimeoutError:
                self.purge_expired()


__all__ = ["Expiring", "ExpiringCache", "utcnow"]
