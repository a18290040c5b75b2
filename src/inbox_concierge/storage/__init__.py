"""Persistence adapters."""

from .sqlite import RuleStorageError, SqliteRuleRepository

__all__ = ["RuleStorageError", "SqliteRuleRepository"]
