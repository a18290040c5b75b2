"""SQLite-backed durable mirror for classification rules."""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Callable
from pathlib import Path
from types import TracebackType
from typing import TypeVar

from ..core.config import StorageSettings
from ..core.datetime_utils import utcnow
from ..core.interfaces import CollaboratorUnavailable, RuleRepository
from ..core.models import ClassificationRule, MatchType

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_INSTRUCTIONS_SCOPE = "classification"


class RuleStorageError(CollaboratorUnavailable):
    """Raised when the rule database cannot be read or written."""


class SqliteRuleRepository(RuleRepository):
    """Persist classification rules and classifier instructions using SQLite.

    Calls may arrive from worker threads, so access to the shared connection
    is serialised.
    """

    def __init__(self, settings: StorageSettings) -> None:
        """Initialise the repository and apply migrations."""
        self._settings = settings
        db_path = Path(settings.db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = sqlite3.connect(db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._apply_migrations()

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> SqliteRuleRepository:
        """Enter context manager scope."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Ensure the connection is closed when exiting context manager."""
        self.close()

    # RuleRepository API ------------------------------------------------------
    def persist_rule(self, rule: ClassificationRule) -> None:
        """Insert or replace the rule stored at ``rule.created_order``."""
        LOGGER.debug("Persisting rule #%d '%s'", rule.created_order, rule.pattern)

        def write() -> None:
            with self._connection:
                self._connection.execute(
                    """
                    INSERT INTO classification_rules (
                        created_order,
                        pattern,
                        folder,
                        match_type,
                        created_at
                    ) VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(created_order) DO UPDATE SET
                        pattern=excluded.pattern,
                        folder=excluded.folder,
                        match_type=excluded.match_type
                    """,
                    (
                        rule.created_order,
                        rule.pattern,
                        rule.folder,
                        rule.match_type.value,
                        utcnow().isoformat(),
                    ),
                )

        self._run("persist rule", write)

    def delete_rule(self, pattern: str, created_order: int | None = None) -> int:
        """Delete the rule at ``created_order``, or all rules with ``pattern``."""

        def delete() -> int:
            with self._connection:
                if created_order is not None:
                    cursor = self._connection.execute(
                        "DELETE FROM classification_rules WHERE created_order = ?",
                        (created_order,),
                    )
                else:
                    cursor = self._connection.execute(
                        "DELETE FROM classification_rules WHERE lower(pattern) = lower(?)",
                        (pattern,),
                    )
            return cursor.rowcount

        deleted = self._run("delete rule", delete)
        LOGGER.debug("Deleted %d stored rule(s) for '%s'", deleted, pattern)
        return deleted

    def clear_rules(self) -> None:
        """Delete every stored rule."""

        def clear() -> None:
            with self._connection:
                self._connection.execute("DELETE FROM classification_rules")

        self._run("clear rules", clear)

    def load_rules(self) -> list[ClassificationRule]:
        """Return stored rules ordered by creation order."""

        def load() -> list[sqlite3.Row]:
            cursor = self._connection.execute(
                """
                SELECT created_order, pattern, folder, match_type
                FROM classification_rules
                ORDER BY created_order ASC
                """
            )
            return cursor.fetchall()

        rules: list[ClassificationRule] = []
        for row in self._run("load rules", load):
            try:
                match_type = MatchType(row["match_type"])
            except ValueError:
                LOGGER.warning(
                    "Unknown match type '%s' on rule '%s'; treating as contains",
                    row["match_type"],
                    row["pattern"],
                )
                match_type = MatchType.CONTAINS
            rules.append(
                ClassificationRule(
                    pattern=row["pattern"],
                    folder=row["folder"],
                    match_type=match_type,
                    created_order=row["created_order"],
                )
            )
        return rules

    def load_instructions(self) -> str | None:
        """Return stored classifier instructions, if any."""

        def load() -> sqlite3.Row | None:
            cursor = self._connection.execute(
                "SELECT instructions FROM custom_instructions WHERE scope = ?",
                (_INSTRUCTIONS_SCOPE,),
            )
            return cursor.fetchone()

        row = self._run("load instructions", load)
        return row["instructions"] if row is not None else None

    def save_instructions(self, instructions: str | None) -> None:
        """Replace stored classifier instructions; ``None`` deletes them."""

        def save() -> None:
            with self._connection:
                if instructions is None:
                    self._connection.execute(
                        "DELETE FROM custom_instructions WHERE scope = ?",
                        (_INSTRUCTIONS_SCOPE,),
                    )
                    return
                self._connection.execute(
                    """
                    INSERT INTO custom_instructions (scope, instructions, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(scope) DO UPDATE SET
                        instructions=excluded.instructions,
                        updated_at=excluded.updated_at
                    """,
                    (
                        _INSTRUCTIONS_SCOPE,
                        instructions,
                        utcnow().isoformat(),
                    ),
                )

        self._run("save instructions", save)

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        with self._lock:
            self._connection.close()

    # Internal helpers --------------------------------------------------------
    def _run(self, action: str, operation: Callable[[], T]) -> T:
        with self._lock:
            try:
                return operation()
            except sqlite3.Error as exc:
                LOGGER.error("Rule storage failed to %s: %s", action, exc)
                raise RuleStorageError(f"Failed to {action}: {exc}") from exc

    def _apply_migrations(self) -> None:
        schema_dir = Path(__file__).resolve().parent / "schema"
        for migration in sorted(schema_dir.glob("*.sql")):
            LOGGER.debug("Applying migration %s", migration.name)
            script = migration.read_text(encoding="utf-8")
            with self._connection:
                self._connection.executescript(script)


__all__ = ["RuleStorageError", "SqliteRuleRepository"]
