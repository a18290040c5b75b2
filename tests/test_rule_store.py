"""Tests for the rule store cache and its durable mirror."""

from __future__ import annotations

import asyncio
import logging

import pytest

from inbox_concierge.classification import RuleStore
from inbox_concierge.core.interfaces import RuleNotFoundError
from inbox_concierge.core.models import ClassificationRule, MatchType

from support import InMemoryRuleRepository, envelope


def _store(repository: InMemoryRuleRepository | None = None) -> RuleStore:
    return RuleStore(repository or InMemoryRuleRepository())


def test_add_rule_writes_through_and_appends_in_order() -> None:
    repository = InMemoryRuleRepository()
    store = _store(repository)

    first = asyncio.run(store.add_rule("linkedin", "Newsletter"))
    second = asyncio.run(store.add_rule("invoice", "Finance", "subject"))

    assert first.durable and second.durable
    assert [rule.pattern for rule in store.list_rules()] == ["linkedin", "invoice"]
    assert [rule.created_order for rule in store.list_rules()] == [1, 2]
    assert second.rules[0].match_type is MatchType.SUBJECT
    assert len(repository.rules) == 2


def test_add_rule_rejects_empty_pattern() -> None:
    with pytest.raises(ValueError):
        asyncio.run(_store().add_rule("  ", "Newsletter"))


def test_reload_orders_rules_by_created_order() -> None:
    repository = InMemoryRuleRepository(
        [
            ClassificationRule("b", "B", created_order=7),
            ClassificationRule("a", "A", created_order=3),
        ]
    )
    repository.instructions = "Bank mail is finance"
    store = _store(repository)

    asyncio.run(store.reload())

    assert [rule.pattern for rule in store.list_rules()] == ["a", "b"]
    assert store.instructions == "Bank mail is finance"


def test_first_match_prefers_older_duplicate() -> None:
    store = _store()
    asyncio.run(store.add_rule("shop", "Shopping"))
    asyncio.run(store.add_rule("shop", "Deals"))

    match = store.first_match(envelope("1", sender="news@shop.example"))

    assert match is not None
    assert match.folder == "Shopping"


def test_remove_rule_by_pattern_is_case_insensitive() -> None:
    repository = InMemoryRuleRepository()
    store = _store(repository)
    asyncio.run(store.add_rule("LinkedIn", "Newsletter"))
    asyncio.run(store.add_rule("github", "Professional"))

    change = asyncio.run(store.remove_rule("linkedin"))

    assert change
    assert [rule.pattern for rule in store.list_rules()] == ["github"]
    assert [rule.pattern for rule in repository.rules] == ["github"]


def test_remove_rule_reports_nothing_removed() -> None:
    change = asyncio.run(_store().remove_rule("missing"))

    assert not change
    assert change.rules == ()


def test_remove_rule_at_uses_one_based_position() -> None:
    store = _store()
    asyncio.run(store.add_rule("a", "A"))
    asyncio.run(store.add_rule("b", "B"))
    asyncio.run(store.add_rule("c", "C"))

    change = asyncio.run(store.remove_rule_at(2))

    assert change.rules[0].pattern == "b"
    assert [rule.pattern for rule in store.list_rules()] == ["a", "c"]


def test_remove_rule_at_out_of_range_raises_not_found() -> None:
    store = _store()
    asyncio.run(store.add_rule("a", "A"))

    with pytest.raises(RuleNotFoundError, match="there are 1 rule"):
        asyncio.run(store.remove_rule_at(5))
    with pytest.raises(RuleNotFoundError):
        asyncio.run(store.remove_rule_at(0))


def test_clear_all_empties_cache_and_mirror() -> None:
    repository = InMemoryRuleRepository()
    store = _store(repository)
    asyncio.run(store.add_rule("a", "A"))
    asyncio.run(store.add_rule("b", "B"))

    change = asyncio.run(store.clear_all())

    assert len(change.rules) == 2
    assert store.list_rules() == []
    assert repository.rules == []


def test_durable_failure_keeps_rule_in_memory(caplog: pytest.LogCaptureFixture) -> None:
    repository = InMemoryRuleRepository()
    repository.failing = True
    store = _store(repository)

    with caplog.at_level(logging.WARNING):
        change = asyncio.run(store.add_rule("linkedin", "Newsletter"))

    assert not change.durable
    assert [rule.pattern for rule in store.list_rules()] == ["linkedin"]
    assert repository.rules == []
    assert "kept in memory only" in caplog.text


def test_set_instructions_strips_and_clears() -> None:
    repository = InMemoryRuleRepository()
    store = _store(repository)

    assert asyncio.run(store.set_instructions("  Receipts go to finance  "))
    assert store.instructions == "Receipts go to finance"
    assert repository.instructions == "Receipts go to finance"

    assert asyncio.run(store.clear_instructions())
    assert store.instructions is None
    assert repository.instructions is None
