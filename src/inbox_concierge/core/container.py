"""Service container wiring the concierge from settings."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class ServiceContainer:
    """Named factories resolved once and shared afterwards.

    Tests replace a collaborator with :meth:`override` before anything that
    depends on it is resolved.
    """

    def __init__(self) -> None:
        self._factories: dict[str, Callable[[ServiceContainer], Any]] = {}
        self._instances: dict[str, Any] = {}

    def register(self, key: str, factory: Callable[[ServiceContainer], T]) -> None:
        """Register a factory under a given key."""
        self._factories[key] = factory

    def override(self, key: str, instance: Any) -> None:
        """Pin ``key`` to an already built ``instance``."""
        self._instances[key] = instance

    def resolve(self, key: str) -> Any:
        """Resolve a dependency by key, invoking its factory once."""
        if key in self._instances:
            return self._instances[key]
        if key not in self._factories:
            raise KeyError(f"Service '{key}' is not registered")
        instance = self._factories[key](self)
        self._instances[key] = instance
        return instance

    def close(self) -> None:
        """Close every resolved service that owns a resource, newest first."""
        for key, instance in reversed(list(self._instances.items())):
            close = getattr(instance, "close", None)
            if callable(close):
                LOGGER.debug("Closing service '%s'", key)
                close()
        self._instances.clear()


__all__ = ["ServiceContainer"]
