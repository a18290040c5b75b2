"""Interpretation of free-text chat replies and compose requests."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import StrEnum

from .llm import LLMClient, LLMError, parse_json_object
from .prompts import build_compose_request_prompt

LOGGER = logging.getLogger(__name__)

_SEND_KEYWORDS = (
    "send",
    "send it",
    "ok",
    "yes",
    "go",
    "confirm",
    "approve",
    "looks good",
    "perfect",
    "envoie",
    "envoyer",
    "oui",
    "valide",
    "confirme",
    "parfait",
    "c'est bon",
    "go ahead",
    "do it",
)
_CANCEL_KEYWORDS = (
    "cancel",
    "abort",
    "stop",
    "forget it",
    "never mind",
    "nevermind",
    "no",
    "annule",
    "annuler",
    "non",
    "laisse tomber",
    "oublie",
)
_POLITENESS = (
    "please",
    "thanks",
    "thank you",
    "just",
    "now",
    "merci",
    "stp",
    "svp",
    "s'il te plait",
    "s'il te plaît",
    "s'il vous plait",
    "s'il vous plaît",
    "maintenant",
)
_NEW_MAIL_KEYWORDS = ("new mail", "new email", "another mail", "another email", "nouveau mail")

_COMPOSE_PATTERN = re.compile(
    r"^(?:please\s+)?(?:send|write|compose|draft|envoie|écris|ecris)\s+"
    r"(?:an?\s+|un\s+)?(?:e-?mail|mail|message)?\s*"
    r"(?:to|à|a)\s+(?P<to>\S+(?:\s+\S+)?)\s*"
    r"(?:(?:to|for|about|saying|that|pour|concernant)\s+|[:,-]\s*)(?P<intent>.+)$",
    re.IGNORECASE | re.DOTALL,
)
_PUNCTUATION = re.compile(r"[^\w'\s]+")
_COMPOSE_TRIGGER = re.compile(
    r"^(?:please\s+)?(?:send|write|compose|draft|envoie|écris|ecris)\b.*\b(?:e-?mail|mail)\b",
    re.IGNORECASE | re.DOTALL,
)


class DraftReply(StrEnum):
    """What a chat reply means while a draft awaits a decision."""

    SEND = "send"
    CANCEL = "cancel"
    NEW_REQUEST = "new_request"
    REVISE = "revise"


def _contains_phrase(text: str, phrases: tuple[str, ...]) -> bool:
    return any(re.search(rf"(?<!\w){re.escape(phrase)}(?!\w)", text) for phrase in phrases)


def _only_phrases(text: str, phrases: tuple[str, ...]) -> bool:
    """Return whether ``text`` is made of ``phrases`` plus politeness words only."""
    remainder = text
    found = False
    for phrase in sorted(phrases, key=len, reverse=True):
        remainder, count = re.subn(rf"(?<!\S){re.escape(phrase)}(?!\S)", " ", remainder)
        found = found or count > 0
    for filler in sorted(_POLITENESS, key=len, reverse=True):
        remainder = re.sub(rf"(?<!\S){re.escape(filler)}(?!\S)", " ", remainder)
    return found and not remainder.strip()


def interpret_draft_reply(text: str) -> DraftReply:
    """Classify a reply sent while a draft is pending.

    A reply is a confirmation or a cancellation only when, punctuation and
    politeness aside, it says nothing else: "ok, send it!" sends, "ok, add
    the date" is a revision. Anything else is a revision instruction.
    """
    lowered = text.lower().strip().replace("\u2019", "'")
    if _contains_phrase(lowered, _NEW_MAIL_KEYWORDS) or (
        _COMPOSE_TRIGGER.match(lowered) and "@" in lowered
    ):
        return DraftReply.NEW_REQUEST
    words = " ".join(_PUNCTUATION.sub(" ", lowered).split())
    if _only_phrases(words, _SEND_KEYWORDS):
        return DraftReply.SEND
    if _only_phrases(words, _CANCEL_KEYWORDS):
        return DraftReply.CANCEL
    return DraftReply.REVISE


def looks_like_compose_request(text: str) -> bool:
    """Return whether ``text`` asks for a new email to be written."""
    return bool(_COMPOSE_TRIGGER.match(text.strip()))


@dataclass(frozen=True, slots=True)
class ParsedComposeRequest:
    """Recipient reference and intent extracted from a chat message."""

    recipient: str | None
    intent: str
    context: str | None = None
    tone: str | None = None


class ComposeRequestParser:
    """Extract compose details with the LLM, falling back to a pattern."""

    def __init__(self, llm_client: LLMClient | None) -> None:
        self._llm_client = llm_client

    async def parse(self, text: str) -> ParsedComposeRequest:
        """Return the recipient reference and intent found in ``text``."""
        if self._llm_client is not None:
            try:
                payload = parse_json_object(
                    await self._llm_client.generate(build_compose_request_prompt(text))
                )
                return _from_payload(payload, text)
            except (LLMError, ValueError) as exc:
                LOGGER.warning("LLM request parsing failed: %s", exc)
        return parse_compose_request(text)


def parse_compose_request(text: str) -> ParsedComposeRequest:
    """Pattern-based extraction used without a working LLM."""
    match = _COMPOSE_PATTERN.match(text.strip())
    if match is None:
        return ParsedComposeRequest(recipient=None, intent=text.strip())
    recipient = match.group("to").strip().rstrip(",:")
    # A two-word capture is only a name when the second word is capitalised.
    first, _, second = recipient.partition(" ")
    intent = match.group("intent").strip()
    if second and ("@" in first or not second[:1].isupper()):
        recipient = first
        intent = f"{second} {intent}"
    return ParsedComposeRequest(recipient=recipient, intent=intent)


def _from_payload(payload: dict[str, object], text: str) -> ParsedComposeRequest:
    def _text(key: str) -> str | None:
        value = payload.get(key)
        return value.strip() if isinstance(value, str) and value.strip() else None

    return ParsedComposeRequest(
        recipient=_text("to"),
        intent=_text("intent") or text.strip(),
        context=_text("context"),
        tone=_text("tone"),
    )


__all__ = [
    "ComposeRequestParser",
    "DraftReply",
    "ParsedComposeRequest",
    "interpret_draft_reply",
    "looks_like_compose_request",
    "parse_compose_request",
]
