"""Mailbox digests combining LLM output with deterministic fallbacks."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass

from inbox_concierge.core.models import MessageEnvelope

from .llm import LLMClient, LLMError, parse_json_object
from .prompts import build_digest_prompt

LOGGER = logging.getLogger(__name__)

_URGENT_PATTERNS = (
    re.compile(r"\burgent\b", re.IGNORECASE),
    re.compile(r"\basap\b", re.IGNORECASE),
    re.compile(r"\baction required\b", re.IGNORECASE),
    re.compile(r"\boverdue\b", re.IGNORECASE),
    re.compile(r"\bimportant\b", re.IGNORECASE),
)
_MAX_LISTED = 10


@dataclass(frozen=True, slots=True)
class MailboxDigest:
    """Readable digest of a set of messages."""

    summary: str
    action_items: tuple[str, ...] = ()
    message_count: int = 0
    used_fallback: bool = False


class MailboxSummarizer:
    """Summarise messages with an LLM, falling back to a grouped listing."""

    def __init__(self, llm_client: LLMClient | None) -> None:
        self._llm_client = llm_client

    async def summarize(
        self, envelopes: Sequence[MessageEnvelope], *, focus: str | None = None
    ) -> MailboxDigest:
        """Return a digest of ``envelopes``."""
        if self._llm_client is not None and envelopes:
            prompt = build_digest_prompt(envelopes, focus=focus)
            try:
                payload = parse_json_object(await self._llm_client.generate(prompt))
                summary, action_items = _parse_digest(payload)
                return MailboxDigest(
                    summary=summary,
                    action_items=tuple(action_items),
                    message_count=len(envelopes),
                )
            except (LLMError, ValueError) as exc:
                LOGGER.warning("LLM digest failed for %d message(s): %s", len(envelopes), exc)
        return build_deterministic_digest(envelopes)


def is_urgent(envelope: MessageEnvelope) -> bool:
    """Return whether the subject or preview carries an urgency keyword."""
    text = f"{envelope.subject} {envelope.preview_text}"
    return any(pattern.search(text) for pattern in _URGENT_PATTERNS)


def build_deterministic_digest(envelopes: Sequence[MessageEnvelope]) -> MailboxDigest:
    """Group messages into urgent and other without any model."""
    urgent = [envelope for envelope in envelopes if is_urgent(envelope)]
    others = [envelope for envelope in envelopes if not is_urgent(envelope)]
    sections: list[str] = []
    if urgent:
        sections.append(_section("🔴 Urgent", urgent))
    if others:
        sections.append(_section("📋 Other", others))
    actions = tuple(
        f"Deal with '{envelope.subject or '(no subject)'}' from {_sender(envelope)}"
        for envelope in urgent[:_MAX_LISTED]
    )
    return MailboxDigest(
        summary="\n\n".join(sections) or "No messages.",
        action_items=actions,
        message_count=len(envelopes),
        used_fallback=True,
    )


def _section(title: str, envelopes: Sequence[MessageEnvelope]) -> str:
    lines = [f"{title} ({len(envelopes)})"]
    lines.extend(
        f"- {_sender(envelope)}: {envelope.subject or '(no subject)'}"
        for envelope in envelopes[:_MAX_LISTED]
    )
    hidden = len(envelopes) - _MAX_LISTED
    if hidden > 0:
        lines.append(f"... and {hidden} more")
    return "\n".join(lines)


def _sender(envelope: MessageEnvelope) -> str:
    return envelope.sender_display_name or envelope.sender or "unknown sender"


def _parse_digest(payload: dict[str, object]) -> tuple[str, list[str]]:
    summary = payload.get("summary")
    items = payload.get("action_items", [])
    if not isinstance(summary, str) or not summary.strip():
        raise ValueError("LLM output missing 'summary'")
    if not isinstance(items, list) or any(not isinstance(item, str) for item in items):
        raise ValueError("LLM output 'action_items' must be a list of strings")
    return summary.strip(), [item.strip() for item in items if item.strip()]


__all__ = [
    "MailboxDigest",
    "MailboxSummarizer",
    "build_deterministic_digest",
    "is_urgent",
]
