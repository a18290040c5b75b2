"""Ordered store of user-defined classification rules."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TypeVar

from inbox_concierge.core.interfaces import (
    CollaboratorUnavailable,
    RuleNotFoundError,
    RuleRepository,
)
from inbox_concierge.core.models import ClassificationRule, MatchType, MessageEnvelope

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RuleChange:
    """Rules affected by a mutation and whether the durable mirror took it.

    Truthy when at least one rule was affected.
    """

    rules: tuple[ClassificationRule, ...]
    durable: bool = True

    def __bool__(self) -> bool:
        return bool(self.rules)


class RuleStore:
    """In-memory cache of classification rules mirrored to durable storage.

    Precedence among rules is ``created_order`` ascending: the cache is kept
    sorted on it and :meth:`first_match` scans in that order, so a reload
    that returns rows in another order cannot change which rule wins.
    Duplicate patterns are kept; the older one prevails.

    Mutations write through to the repository first. When that write fails
    the cache is still updated and the change is reported with
    ``durable=False``; such a rule lasts until the process exits.
    """

    def __init__(self, repository: RuleRepository) -> None:
        self._repository = repository
        self._rules: tuple[ClassificationRule, ...] = ()
        self._instructions: str | None = None
        self._lock = asyncio.Lock()

    # Queries -----------------------------------------------------------------
    def list_rules(self) -> list[ClassificationRule]:
        """Return rules in precedence order."""
        return list(self._rules)

    @property
    def instructions(self) -> str | None:
        """Free-text guidance appended to the classifier prompt."""
        return self._instructions

    def first_match(self, envelope: MessageEnvelope) -> ClassificationRule | None:
        """Return the highest-precedence rule matching ``envelope``."""
        for rule in self._rules:
            if rule.matches(envelope):
                LOGGER.debug(
                    "Rule %s '%s' -> %s matched %s",
                    rule.match_type.value,
                    rule.pattern,
                    rule.folder,
                    envelope.sender,
                )
                return rule
        return None

    # Loading -----------------------------------------------------------------
    async def reload(self) -> None:
        """Replace the cache with the contents of the durable mirror."""
        rules = await asyncio.to_thread(self._repository.load_rules)
        instructions = await asyncio.to_thread(self._repository.load_instructions)
        self._rules = _ordered(rules)
        self._instructions = instructions
        LOGGER.info(
            "Loaded %d classification rule(s)%s",
            len(self._rules),
            " and custom instructions" if instructions else "",
        )

    # Mutations ---------------------------------------------------------------
    async def add_rule(
        self,
        pattern: str,
        folder: str,
        match_type: MatchType | str = MatchType.SENDER,
    ) -> RuleChange:
        """Append a rule after every existing one."""
        pattern = pattern.strip()
        folder = folder.strip()
        if not pattern or not folder:
            raise ValueError("A rule needs both a pattern and a folder")
        async with self._lock:
            next_order = max((rule.created_order for rule in self._rules), default=0) + 1
            rule = ClassificationRule(
                pattern=pattern,
                folder=folder,
                match_type=MatchType(match_type),
                created_order=next_order,
            )
            durable = await self._write_through(
                "persist", lambda: self._repository.persist_rule(rule)
            )
            self._rules = (*self._rules, rule)
        LOGGER.info(
            "Added rule #%d %s '%s' -> %s",
            rule.created_order,
            rule.match_type.value,
            rule.pattern,
            rule.folder,
        )
        return RuleChange(rules=(rule,), durable=durable)

    async def remove_rule(self, pattern: str) -> RuleChange:
        """Remove every rule whose pattern equals ``pattern`` ignoring case."""
        needle = pattern.strip().lower()
        async with self._lock:
            removed = tuple(rule for rule in self._rules if rule.pattern.lower() == needle)
            if not removed:
                return RuleChange(rules=())

            def delete_each() -> None:
                for rule in removed:
                    self._repository.delete_rule(rule.pattern, rule.created_order)

            durable = await self._write_through("delete", delete_each)
            self._rules = tuple(rule for rule in self._rules if rule not in removed)
        LOGGER.info("Removed %d rule(s) with pattern '%s'", len(removed), pattern)
        return RuleChange(rules=removed, durable=durable)

    async def remove_rule_at(self, position: int) -> RuleChange:
        """Remove the rule at a 1-based ``position`` in precedence order."""
        async with self._lock:
            if position < 1 or position > len(self._rules):
                raise RuleNotFoundError(
                    f"Rule #{position} not found; there are {len(self._rules)} rule(s)"
                )
            rule = self._rules[position - 1]
            durable = await self._write_through(
                "delete",
                lambda: self._repository.delete_rule(rule.pattern, rule.created_order),
            )
            self._rules = tuple(item for item in self._rules if item is not rule)
        LOGGER.info("Removed rule #%d '%s' -> %s", position, rule.pattern, rule.folder)
        return RuleChange(rules=(rule,), durable=durable)

    async def clear_all(self) -> RuleChange:
        """Remove every rule."""
        async with self._lock:
            removed = self._rules
            durable = await self._write_through("clear", self._repository.clear_rules)
            self._rules = ()
        LOGGER.info("Cleared %d rule(s)", len(removed))
        return RuleChange(rules=removed, durable=durable)

    async def set_instructions(self, instructions: str | None) -> bool:
        """Replace the free-text classifier guidance; return durability."""
        text = instructions.strip() if instructions else None
        async with self._lock:
            durable = await self._write_through(
                "save instructions",
                lambda: self._repository.save_instructions(text or None),
            )
            self._instructions = text or None
        return durable

    async def clear_instructions(self) -> bool:
        """Drop the classifier guidance; return durability."""
        return await self.set_instructions(None)

    # Internal helpers --------------------------------------------------------
    async def _write_through(self, action: str, write: Callable[[], T]) -> bool:
        try:
            await asyncio.to_thread(write)
        except CollaboratorUnavailable as exc:
            LOGGER.warning(
                "Durable rule storage failed to %s; change kept in memory only: %s",
                action,
                exc,
            )
            return False
        return True


def _ordered(rules: Sequence[ClassificationRule]) -> tuple[ClassificationRule, ...]:
    return tuple(sorted(rules, key=lambda rule: rule.created_order))


__all__ = ["RuleChange", "RuleStore"]
