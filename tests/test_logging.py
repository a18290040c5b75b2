"""Tests for logging utilities."""

from __future__ import annotations

import logging

from inbox_concierge.core.config import LoggingSettings
from inbox_concierge.core.logging import configure_logging


def test_configure_logging_sets_root_level() -> None:
    """configure_logging should set the root logger level according to settings."""

    settings = LoggingSettings(level="debug", structured=False)
    configure_logging(settings)
    assert logging.getLogger().level == logging.DEBUG


def test_configure_logging_quiets_http_clients() -> None:
    configure_logging(LoggingSettings(level="INFO", structured=True))

    assert logging.getLogger("httpx").level == logging.WARNING
    formatter = logging.getLogger().handlers[0].formatter
    assert formatter is not None
    assert formatter._style._fmt.startswith("{asctime}")  # pylint: disable=protected-access
