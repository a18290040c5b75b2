"""Clock abstraction and datetime helpers shared across the application."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Protocol

__all__ = [
    "Clock",
    "SystemClock",
    "utcnow",
    "ensure_utc",
    "display_time",
]


class Clock(Protocol):
    """Source of the current time, injectable so tests can move it."""

    def now(self) -> datetime:
        """Return the current timezone-aware UTC time."""
        raise NotImplementedError


class SystemClock:
    """Clock backed by the system wall time."""

    def now(self) -> datetime:
        """Return the current UTC time."""
        return utcnow()


def utcnow() -> datetime:
    """Return the current UTC time."""
    return datetime.now(tz=UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` converted to UTC when timezone-aware."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def display_time(value: datetime | None) -> str:
    """Return an ``HH:MM`` representation for chat reports."""
    if value is None:
        return "--:--"
    display = ensure_utc(value) or value
    return display.astimezone().strftime("%H:%M")
