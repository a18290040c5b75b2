"""Tests for the SQLite rule repository."""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path

import pytest

from inbox_concierge.classification import RuleStore
from inbox_concierge.core.config import StorageSettings
from inbox_concierge.core.models import ClassificationRule, MatchType
from inbox_concierge.storage import RuleStorageError, SqliteRuleRepository


def _repository(tmp_path: Path) -> SqliteRuleRepository:
    return SqliteRuleRepository(StorageSettings(db_path=tmp_path / "rules.db"))


def test_persist_and_load_rules_in_created_order(tmp_path: Path) -> None:
    with _repository(tmp_path) as repository:
        repository.persist_rule(ClassificationRule("b", "B", MatchType.SUBJECT, 2))
        repository.persist_rule(ClassificationRule("a", "A", MatchType.SENDER, 1))

        rules = repository.load_rules()

    assert [(rule.pattern, rule.created_order) for rule in rules] == [("a", 1), ("b", 2)]
    assert rules[1].match_type is MatchType.SUBJECT


def test_persist_rule_replaces_same_order(tmp_path: Path) -> None:
    with _repository(tmp_path) as repository:
        repository.persist_rule(ClassificationRule("a", "A", created_order=1))
        repository.persist_rule(ClassificationRule("a", "Other", created_order=1))

        assert [rule.folder for rule in repository.load_rules()] == ["Other"]


def test_delete_rule_by_pattern_or_order(tmp_path: Path) -> None:
    with _repository(tmp_path) as repository:
        repository.persist_rule(ClassificationRule("Shop", "A", created_order=1))
        repository.persist_rule(ClassificationRule("shop", "B", created_order=2))
        repository.persist_rule(ClassificationRule("bank", "C", created_order=3))

        assert repository.delete_rule("bank", created_order=3) == 1
        assert repository.delete_rule("SHOP") == 2
        assert repository.load_rules() == []


def test_clear_rules(tmp_path: Path) -> None:
    with _repository(tmp_path) as repository:
        repository.persist_rule(ClassificationRule("a", "A", created_order=1))
        repository.clear_rules()

        assert repository.load_rules() == []


def test_instructions_round_trip_and_delete(tmp_path: Path) -> None:
    with _repository(tmp_path) as repository:
        assert repository.load_instructions() is None
        repository.save_instructions("Receipts are finance")
        repository.save_instructions("Receipts are shopping")
        assert repository.load_instructions() == "Receipts are shopping"
        repository.save_instructions(None)
        assert repository.load_instructions() is None


def test_rules_survive_reopen(tmp_path: Path) -> None:
    with _repository(tmp_path) as repository:
        store = RuleStore(repository)
        asyncio.run(store.add_rule("linkedin", "Newsletter"))
        asyncio.run(store.add_rule("invoice", "Finance", "subject"))

    with _repository(tmp_path) as repository:
        store = RuleStore(repository)
        asyncio.run(store.reload())

        assert [rule.pattern for rule in store.list_rules()] == ["linkedin", "invoice"]


def test_remove_accented_pattern_is_durable(tmp_path: Path) -> None:
    with _repository(tmp_path) as repository:
        store = RuleStore(repository)
        asyncio.run(store.add_rule("Hélène", "Family"))
        asyncio.run(store.add_rule("HÉLÈNE", "Family"))
        asyncio.run(store.add_rule("github", "Professional"))

        change = asyncio.run(store.remove_rule("hélène"))

        assert len(change.rules) == 2
        assert change.durable

    with _repository(tmp_path) as repository:
        assert [rule.pattern for rule in repository.load_rules()] == ["github"]


def test_unknown_match_type_loads_as_contains(tmp_path: Path) -> None:
    db_path = tmp_path / "rules.db"
    with _repository(tmp_path):
        pass
    connection = sqlite3.connect(db_path)
    with connection:
        connection.execute(
            "INSERT INTO classification_rules (created_order, pattern, folder, match_type,"
            " created_at) VALUES (1, 'x', 'X', 'domain', '2025-01-01')"
        )
    connection.close()

    with _repository(tmp_path) as repository:
        assert repository.load_rules()[0].match_type is MatchType.CONTAINS


def test_closed_connection_raises_storage_error(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    repository.close()

    with pytest.raises(RuleStorageError):
        repository.load_rules()
