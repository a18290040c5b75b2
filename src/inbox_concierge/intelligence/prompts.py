"""Prompt templates for LLM-driven classification and drafting."""

from __future__ import annotations

from collections.abc import Sequence
from textwrap import dedent

from inbox_concierge.core.models import DraftSession, MessageEnvelope, PromptConstraints

_CATEGORY_HINTS = {
    "urgent": "critical mail needing immediate action (deadlines, incidents, alerts)",
    "professional": "work, applications and professional relationships",
    "shopping": "order confirmations, deliveries, e-commerce",
    "newsletter": "newsletters, marketing, promotions, professional networks",
    "finance": "banks, payments, invoices, transactions",
    "social": "social networks, invitations, social notifications",
}


def build_classification_prompt(
    envelope: MessageEnvelope, constraints: PromptConstraints
) -> str:
    """Compose a JSON-only prompt choosing one bucket for ``envelope``."""
    categories = "\n".join(
        f'- "{category}": {_CATEGORY_HINTS.get(category, "user-defined folder")}'
        for category in constraints.categories
    )
    sections = [
        dedent(
            """
            You are an expert at filing email into folders.
            Decide which folder the email below belongs in.

            Available categories:
            """
        ).strip(),
        categories,
    ]
    if constraints.rules:
        rule_lines = "\n".join(
            f'- If the {rule.match_type.value} contains "{rule.pattern}", '
            f'file it in "{rule.folder}"'
            for rule in constraints.rules
        )
        sections.append(f"Custom rules (take precedence):\n{rule_lines}")
    if constraints.instructions:
        sections.append(f"Additional instructions:\n{constraints.instructions}")

    sections.append(
        "Judge from the sender and the subject.\n"
        'Respond ONLY with JSON: {"category": string, "confidence": number, "reason": string}'
    )
    sections.append(
        f"From: {envelope.sender_display_name or envelope.sender} <{envelope.sender}>\n"
        f"Subject: {envelope.subject or '(no subject)'}\n"
        f"Preview: {envelope.preview_text}"
    )
    return "\n\n".join(sections)


def build_compose_prompt(
    recipient: str,
    intent: str,
    *,
    signature: str,
    context: str | None = None,
    tone: str | None = None,
) -> str:
    """Compose a prompt asking for a new email subject and body."""
    prompt = f"""
    You are an expert email writer. Write an email from the user's request.

    Rules:
    1. Write a complete email: greeting, body, closing and signature.
    2. Match the tone to the context (formal for work, friendly for people
       the user knows).
    3. Be concise but complete, and suggest a fitting subject.
    4. The signature at the end must always be exactly: "{signature}"

    Return ONLY JSON:
    {{
      "subject": string,
      "body": string,   # complete body ending with the signature
      "tone": string
    }}

    Recipient: {recipient}
    What the user wants to say: {intent}
    Additional context: {context or "(none)"}
    Requested tone: {tone or "(unspecified)"}
    """
    return dedent(prompt).strip()


def build_revise_prompt(
    session: DraftSession, instructions: str, *, signature: str
) -> str:
    """Compose a prompt asking for targeted changes to an existing draft."""
    prompt = f"""
    You are an expert email writer. Modify the existing email below.

    Rules:
    1. Apply ONLY the requested changes and keep everything else intact.
    2. Keep the email coherent; a tone change applies to the whole email.
    3. The signature at the end must always remain exactly: "{signature}"

    Return ONLY JSON:
    {{
      "subject": string,   # changed or original
      "body": string,      # complete body ending with the signature
      "changes": string    # one-line summary of what changed
    }}

    CURRENT EMAIL
    To: {session.recipient}
    Subject: {session.subject}
    """
    current = dedent(prompt).strip() + f"\nBody:\n{session.body}"
    return current + f"\n\nREQUESTED CHANGES: {instructions}"


def build_digest_prompt(
    envelopes: Sequence[MessageEnvelope], *, focus: str | None = None
) -> str:
    """Compose a prompt asking for a digest of several messages."""
    listing = "\n".join(
        f"{position}. From: {envelope.sender_display_name or envelope.sender} "
        f"<{envelope.sender}> | Subject: {envelope.subject or '(no subject)'} | "
        f"Preview: {envelope.preview_text[:120]}"
        for position, envelope in enumerate(envelopes, start=1)
    )
    prompt = """
    You are an email assistant. Summarise the messages below for the user.
    Group them as urgent, important and other, name the sender and subject of
    every urgent or important message, and keep the rest to one sentence.

    Return ONLY JSON:
    {
      "summary": string,          # the digest, a few short lines
      "action_items": [string]    # concrete follow-ups, may be empty
    }
    """
    sections = [dedent(prompt).strip()]
    if focus:
        sections.append(f"Focus: {focus}")
    sections.append(f"Messages:\n{listing}")
    return "\n\n".join(sections)


def build_compose_request_prompt(text: str) -> str:
    """Compose a prompt extracting recipient and intent from a chat message."""
    prompt = f"""
    You analyse requests to send an email. Extract the details of the request.
    Return ONLY JSON:
    {{
      "to": string|null,          # address or name of the recipient
      "intent": string,           # what the user wants to say
      "context": string|null,     # any extra context
      "tone": string|null         # formal, friendly, professional or null
    }}

    Example: "Send an email to jean@test.com to say hello"
    -> {{"to": "jean@test.com", "intent": "say hello", "context": null, "tone": "friendly"}}

    Request: {text}
    """
    return dedent(prompt).strip()


__all__ = [
    "build_classification_prompt",
    "build_compose_prompt",
    "build_compose_request_prompt",
    "build_digest_prompt",
    "build_revise_prompt",
]
