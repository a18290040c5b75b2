"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field


class ImapSettings(BaseModel):
    """Settings controlling IMAP connectivity."""

    host: str = Field(default="imap.gmail.com", description="IMAP hostname")
    port: int = Field(default=993, description="IMAP port, typically 993 for SSL")
    username: str | None = Field(default=None, description="Account username")
    app_password: str | None = Field(default=None, description="Gmail app password")
    inbox: str = Field(default="INBOX", description="Mailbox holding unfiled mail")
    use_ssl: bool = Field(default=True, description="Whether to enforce SSL")


class SmtpSettings(BaseModel):
    """Settings for the outbound mail server."""

    host: str | None = Field(default=None, description="SMTP hostname")
    port: int = Field(default=587, description="SMTP port")
    username: str | None = Field(default=None, description="SMTP login")
    password: str | None = Field(default=None, description="SMTP password")
    use_tls: bool = Field(default=True, description="Use STARTTLS instead of SSL")
    from_name: str | None = Field(default=None, description="Display name on From")


class LlmSettings(BaseModel):
    """Settings for the local LLM provider."""

    base_url: str = Field(
        default="http://localhost:11434", description="Ollama server URL"
    )
    model: str = Field(default="gpt-oss:20b", description="Model identifier")
    timeout_seconds: int = Field(
        default=30, description="Request timeout for LLM calls"
    )
    temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Sampling temperature for LLM completions",
    )
    max_output_tokens: int | None = Field(
        default=1000,
        ge=32,
        description="Maximum tokens to request from the provider",
    )


class StorageSettings(BaseModel):
    """Settings for local persistence."""

    db_path: Path = Field(
        default=Path("./inbox_concierge.db"), description="SQLite database path"
    )


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Toggle brace-style structured logging"
    )


class SessionSettings(BaseModel):
    """Lifetimes of the per-initiator conversational state."""

    draft_ttl_seconds: int = Field(
        default=30 * 60, ge=1, description="Age after which a draft is discarded"
    )
    sent_grace_seconds: int = Field(
        default=5 * 60, ge=0, description="How long a sent draft stays visible"
    )
    disambiguation_ttl_seconds: int = Field(
        default=5 * 60, ge=1, description="Age after which a recipient choice lapses"
    )
    sweep_interval_seconds: int = Field(
        default=60, ge=1, description="Period of the hygiene sweep in the web app"
    )


class ClassificationSettings(BaseModel):
    """Defaults used by the classification engine."""

    default_bucket: str = Field(
        default="newsletter", description="Bucket used when the classifier fails"
    )
    degraded_confidence: float = Field(
        default=0.3, ge=0.0, le=1.0, description="Confidence reported when degraded"
    )
    memory_size: int = Field(
        default=100, ge=1, description="Recent classifications kept for reporting"
    )
    reconcile_limit: int = Field(
        default=30, ge=1, description="Messages listed per reclassification run"
    )
    rule_apply_limit: int = Field(
        default=200,
        ge=0,
        description="Inbox messages re-filed when a rule is added; 0 disables it",
    )
    signature: str = Field(
        default="Inbox Concierge", description="Closing line enforced on drafts"
    )


class ChannelSettings(BaseModel):
    """Outbound messaging channel configuration."""

    webhook_url: str | None = Field(
        default=None, description="Endpoint receiving outbound chat messages"
    )
    token: str | None = Field(default=None, description="Bearer token for the channel")
    max_message_chars: int = Field(
        default=4000, ge=100, description="Longest text sent in one message"
    )
    timeout_seconds: int = Field(default=15, description="HTTP timeout for delivery")


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    imap: ImapSettings = Field(default_factory=ImapSettings)
    smtp: SmtpSettings = Field(default_factory=SmtpSettings)
    llm: LlmSettings = Field(default_factory=LlmSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    sessions: SessionSettings = Field(default_factory=SessionSettings)
    classification: ClassificationSettings = Field(
        default_factory=ClassificationSettings
    )
    channel: ChannelSettings = Field(default_factory=ChannelSettings)


ENV_PREFIX = "INBOX_CONCIERGE_"


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _coerce_value(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    if value == "":
        return None
    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return value


def _collect_env_values(
    env_file: Path | str | None, *, include_environment: bool
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values: dict[str, Any] = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values: dict[str, Any] = {}
    if include_environment:
        env_values = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }

    for key, value in {**file_values, **env_values}.items():
        path = _normalize_key(key)
        if not path:
            continue
        _merge_into_tree(collected, path, _coerce_value(value))

    return collected


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides."""
    collected = _collect_env_values(env_file, include_environment=include_environment)
    if overrides:
        collected.update(overrides)
    return AppSettings.model_validate(collected)


__all__ = [
    "AppSettings",
    "ChannelSettings",
    "ClassificationSettings",
    "ImapSettings",
    "LlmSettings",
    "LoggingSettings",
    "SessionSettings",
    "SmtpSettings",
    "StorageSettings",
    "load_app_settings",
]
