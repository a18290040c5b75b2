"""Tests for the recipient disambiguation cache."""

from __future__ import annotations

from datetime import timedelta

import pytest

from inbox_concierge.core.interfaces import (
    DisambiguationNotFoundError,
    InvalidSelectionError,
)
from inbox_concierge.core.models import ComposeRequest, Contact
from inbox_concierge.sessions import RecipientDisambiguationCache

from support import FakeClock

JEANS = [
    Contact("Jean Dupont", "jean.dupont@example.com"),
    Contact("Jean Martin", "jmartin@corp.example"),
    Contact("Jeanne Leroy", "jeanne@example.org"),
]
REQUEST = ComposeRequest(intent="invite to lunch", tone="friendly")


def _cache(clock: FakeClock | None = None) -> RecipientDisambiguationCache:
    return RecipientDisambiguationCache(ttl=timedelta(minutes=5), clock=clock or FakeClock())


def test_selection_by_index_resolves_and_purges() -> None:
    cache = _cache()
    cache.record("alice", "Jean", JEANS, REQUEST)

    resolved = cache.resolve("alice", "2")

    assert resolved.recipient == "jmartin@corp.example"
    assert resolved.display_name == "Jean Martin"
    assert resolved.request == REQUEST
    assert not cache.has_pending("alice")
    with pytest.raises(DisambiguationNotFoundError):
        cache.resolve("alice", "2")


def test_selection_by_partial_name_takes_first_match() -> None:
    cache = _cache()
    cache.record("alice", "Jean", JEANS, REQUEST)

    assert cache.resolve("alice", "MARTIN").recipient == "jmartin@corp.example"

    cache.record("alice", "Jean", JEANS, REQUEST)
    assert cache.resolve("alice", "jean").recipient == "jean.dupont@example.com"


def test_selection_by_address_accepts_unlisted_address() -> None:
    cache = _cache()
    cache.record("alice", "Jean", JEANS, REQUEST)

    resolved = cache.resolve("alice", "JEANNE@example.org")
    assert resolved.display_name == "Jeanne Leroy"

    cache.record("alice", "Jean", JEANS, REQUEST)
    assert cache.resolve("alice", "other@example.net").recipient == "other@example.net"


def test_invalid_selection_restates_range_and_keeps_entry() -> None:
    cache = _cache()
    cache.record("alice", "Jean", JEANS, REQUEST)

    with pytest.raises(InvalidSelectionError, match="between 1 and 3"):
        cache.resolve("alice", "7")
    with pytest.raises(InvalidSelectionError):
        cache.resolve("alice", "Pierre")

    assert cache.has_pending("alice")


def test_resolution_after_ttl_is_not_found() -> None:
    clock = FakeClock()
    cache = _cache(clock)
    cache.record("alice", "Jean", JEANS, REQUEST)

    clock.advance(minutes=6)

    with pytest.raises(DisambiguationNotFoundError):
        cache.resolve("alice", "1")


def test_record_replaces_previous_choice() -> None:
    cache = _cache()
    cache.record("alice", "Jean", JEANS, REQUEST)
    cache.record("alice", "Marie", [Contact("Marie", "marie@example.com")], REQUEST)

    assert cache.get("alice").queried_name == "Marie"
    assert cache.resolve("alice", "1").recipient == "marie@example.com"


def test_record_requires_candidates() -> None:
    with pytest.raises(ValueError):
        _cache().record("alice", "Nobody", [], REQUEST)


def test_discard_and_purge() -> None:
    clock = FakeClock()
    cache = _cache(clock)
    cache.record("alice", "Jean", JEANS, REQUEST)
    cache.record("bob", "Jean", JEANS, REQUEST)

    assert cache.discard("alice")
    assert not cache.discard("alice")
    clock.advance(minutes=10)
    assert cache.purge_expired() == 1
