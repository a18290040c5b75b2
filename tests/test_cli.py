"""Tests for the command-line entry points."""

# pylint: disable=protected-access

from __future__ import annotations

import argparse
import asyncio

import pytest

from inbox_concierge import cli
from inbox_concierge.classification import RuleStore
from inbox_concierge.core.config import AppSettings
from inbox_concierge.core.container import ServiceContainer
from inbox_concierge.storage import RuleStorageError

from support import InMemoryRuleRepository


class UnreadableRuleRepository(InMemoryRuleRepository):
    """Repository whose database cannot be read."""

    def load_rules(self):
        raise RuleStorageError("Failed to load rules: database is locked")


class SilentConcierge:
    async def handle(self, initiator: str, text: str) -> str:
        raise AssertionError(f"handled {text!r} for {initiator}")


def _container(repository: InMemoryRuleRepository) -> ServiceContainer:
    container = ServiceContainer()
    container.override("rule_store", RuleStore(repository))
    container.override("concierge", SilentConcierge())
    return container


def _args(**overrides) -> argparse.Namespace:
    args = cli.build_parser().parse_args(["rules"])
    for key, value in overrides.items():
        setattr(args, key, value)
    return args


def test_rules_command_reports_unreadable_storage(capsys: pytest.CaptureFixture[str]) -> None:
    container = _container(UnreadableRuleRepository())

    status = asyncio.run(cli._run_rules(container, _args()))

    assert status == 1
    assert "Could not load classification rules: Failed to load rules" in capsys.readouterr().out


def test_chat_command_reports_unreadable_storage(capsys: pytest.CaptureFixture[str]) -> None:
    container = _container(UnreadableRuleRepository())

    status = asyncio.run(cli._run_chat(container, "rules"))

    assert status == 1
    assert "database is locked" in capsys.readouterr().out


def test_reconcile_command_reports_unreadable_storage(
    capsys: pytest.CaptureFixture[str],
) -> None:
    container = _container(UnreadableRuleRepository())

    status = asyncio.run(cli._run_reconcile(container, _args(), AppSettings()))

    assert status == 1
    assert "Could not load classification rules" in capsys.readouterr().out


def test_rules_command_adds_and_lists(capsys: pytest.CaptureFixture[str]) -> None:
    repository = InMemoryRuleRepository()
    container = _container(repository)

    status = asyncio.run(
        cli._run_rules(container, _args(add=["invoice", "Finance"], match_type="subject"))
    )

    assert status == 0
    assert "1. [subject] invoice -> Finance" in capsys.readouterr().out
    assert [rule.pattern for rule in repository.rules] == ["invoice"]
