"""Per-initiator session storage with lazy time-to-live expiry."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Generic, TypeVar

from inbox_concierge.core.datetime_utils import Clock, SystemClock

LOGGER = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass(slots=True)
class _Entry(Generic[V]):
    value: V
    created_at: datetime
    expires_at: datetime


class SessionStore(Generic[V]):
    """Keyed store where an entry older than ``ttl`` reads as absent.

    Expiry is checked on every access; :meth:`purge_expired` only frees
    memory. A store instance is owned by one process; swapping in a shared
    implementation only has to honour the same methods.
    """

    def __init__(
        self, ttl: timedelta, clock: Clock | None = None, *, name: str = "session"
    ) -> None:
        self._ttl = ttl
        self._clock = clock or SystemClock()
        self._name = name
        self._entries: dict[str, _Entry[V]] = {}

    @property
    def clock(self) -> Clock:
        """Clock used to age entries."""
        return self._clock

    def put(self, key: str, value: V) -> V:
        """Store ``value`` under ``key``, replacing any previous entry."""
        now = self._clock.now()
        self._entries[key] = _Entry(value=value, created_at=now, expires_at=now + self._ttl)
        return value

    def get(self, key: str) -> V | None:
        """Return the live entry for ``key``, purging it when expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._is_expired(entry, self._clock.now()):
            del self._entries[key]
            LOGGER.debug("Expired %s for %s purged", self._name, key)
            return None
        return entry.value

    def pop(self, key: str) -> V | None:
        """Remove and return the live entry for ``key``."""
        value = self.get(key)
        self._entries.pop(key, None)
        return value

    def expire_after(self, key: str, delay: timedelta) -> None:
        """Shorten the lifetime of ``key`` to ``delay`` from now."""
        entry = self._entries.get(key)
        if entry is None:
            return
        entry.expires_at = min(entry.expires_at, self._clock.now() + delay)

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock.now()
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
        for key in expired:
            del self._entries[key]
        if expired:
            LOGGER.debug("Purged %d expired %s(s)", len(expired), self._name)
        return len(expired)

    def active_count(self) -> int:
        """Return how many live entries remain after purging expired ones."""
        self.purge_expired()
        return len(self._entries)

    @staticmethod
    def _is_expired(entry: _Entry[V], now: datetime) -> bool:
        return now > entry.expires_at


class KeyedLocks:
    """One :class:`asyncio.Lock` per key, dropped once nobody holds or awaits it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Serialise the enclosed block with every other holder of ``key``."""
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


__all__ = ["KeyedLocks", "SessionStore"]
