"""Drafting service that writes and revises outbound messages."""

from __future__ import annotations

import logging

from inbox_concierge.core.models import DraftContent, DraftSession

from .llm import LLMClient, LLMError, parse_json_object
from .prompts import build_compose_prompt, build_revise_prompt

LOGGER = logging.getLogger(__name__)


class DraftWriter:
    """Generate draft content with an LLM and a deterministic fallback.

    Every body produced ends with the configured signature line.
    """

    def __init__(self, llm_client: LLMClient | None, *, signature: str) -> None:
        self._llm_client = llm_client
        self._signature = signature.strip()

    async def compose(
        self,
        recipient: str,
        intent: str,
        *,
        context: str | None = None,
        tone: str | None = None,
    ) -> DraftContent:
        """Return a subject and body for a new message to ``recipient``."""
        if self._llm_client is not None:
            prompt = build_compose_prompt(
                recipient, intent, signature=self._signature, context=context, tone=tone
            )
            try:
                payload = parse_json_object(await self._llm_client.generate(prompt))
                subject, body = _subject_and_body(payload)
                return DraftContent(subject=subject, body=self._sign(body))
            except (LLMError, ValueError) as exc:
                LOGGER.warning("LLM drafting failed for %s: %s", recipient, exc)

        return DraftContent(
            subject="Message",
            body=self._sign(intent.strip()),
            used_fallback=True,
        )

    async def revise(self, session: DraftSession, instructions: str) -> DraftContent:
        """Return ``session`` content rewritten according to ``instructions``.

        Without a usable LLM reply the current content is returned unchanged.
        """
        if self._llm_client is not None:
            prompt = build_revise_prompt(session, instructions, signature=self._signature)
            try:
                payload = parse_json_object(await self._llm_client.generate(prompt))
                subject, body = _subject_and_body(payload, default_subject=session.subject)
                changes = payload.get("changes")
                return DraftContent(
                    subject=subject,
                    body=self._sign(body),
                    changes=changes if isinstance(changes, str) else None,
                )
            except (LLMError, ValueError) as exc:
                LOGGER.warning("LLM revision failed for %s: %s", session.initiator, exc)

        return DraftContent(
            subject=session.subject,
            body=session.body,
            changes="Revision failed; the draft is unchanged",
            used_fallback=True,
        )

    def _sign(self, body: str) -> str:
        """Ensure ``body`` ends with the signature line exactly once."""
        text = body.rstrip()
        if not self._signature:
            return text
        lines = text.splitlines()
        if lines and lines[-1].strip() == self._signature:
            return text
        return f"{text}\n\n{self._signature}" if text else self._signature


def _subject_and_body(
    payload: dict[str, object], *, default_subject: str | None = None
) -> tuple[str, str]:
    subject = payload.get("subject") or default_subject
    body = payload.get("body")
    if not isinstance(subject, str) or not subject.strip():
        raise ValueError("Draft output missing 'subject' field")
    if not isinstance(body, str) or not body.strip():
        raise ValueError("Draft output missing 'body' field")
    return subject.strip(), body.strip()


__all__ = ["DraftWriter"]
