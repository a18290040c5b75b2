"""Core utilities for configuration, logging, models and collaborator contracts."""

from .config import AppSettings, SessionSettings, SmtpSettings, load_app_settings
from .datetime_utils import Clock, SystemClock
from .logging import configure_logging

__all__ = [
    "AppSettings",
    "Clock",
    "SessionSettings",
    "SmtpSettings",
    "SystemClock",
    "configure_logging",
    "load_app_settings",
]
