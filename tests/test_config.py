"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from inbox_concierge.core.config import load_app_settings


@pytest.fixture(autouse=True)
def clear_settings_cache() -> None:
    """Ensure each test sees a fresh settings instance."""

    load_app_settings.cache_clear()


def test_defaults_loaded_without_env_file() -> None:
    """Default values should be returned when no overrides are present."""

    settings = load_app_settings(include_environment=False)
    assert settings.imap.host == "imap.gmail.com"
    assert settings.storage.db_path == Path("./inbox_concierge.db")
    assert settings.sessions.draft_ttl_seconds == 1800
    assert settings.sessions.sent_grace_seconds == 300
    assert settings.sessions.disambiguation_ttl_seconds == 300
    assert settings.classification.default_bucket == "newsletter"
    assert settings.classification.degraded_confidence == 0.3
    assert settings.classification.memory_size == 100


def test_env_file_overrides(tmp_path: Path) -> None:
    """Values defined in an env file should override defaults."""

    env_file = tmp_path / "test.env"
    env_file.write_text(
        "INBOX_CONCIERGE_IMAP__HOST=imap.example.com\n"
        "INBOX_CONCIERGE_SESSIONS__DRAFT_TTL_SECONDS=600\n"
        "INBOX_CONCIERGE_SMTP__USE_TLS=false\n"
        "INBOX_CONCIERGE_CHANNEL__TOKEN=\n",
        encoding="utf-8",
    )

    settings = load_app_settings(env_file=env_file, include_environment=False)
    assert settings.imap.host == "imap.example.com"
    assert settings.sessions.draft_ttl_seconds == 600
    assert settings.smtp.use_tls is False
    assert settings.channel.token is None


def test_environment_overrides_env_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / "test.env"
    env_file.write_text("INBOX_CONCIERGE_LLM__MODEL=from-file\n", encoding="utf-8")
    monkeypatch.setenv("INBOX_CONCIERGE_LLM__MODEL", "from-env")

    settings = load_app_settings(env_file=env_file)
    assert settings.llm.model == "from-env"


def test_invalid_value_rejected() -> None:
    with pytest.raises(ValueError):
        load_app_settings(
            include_environment=False,
            classification={"degraded_confidence": 3},
        )
