"""Protocol interfaces for the collaborators the core depends on."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from .models import (
    ClassificationResult,
    ClassificationRule,
    Contact,
    DraftContent,
    DraftSession,
    MessageEnvelope,
    PromptConstraints,
)


class CollaboratorUnavailable(RuntimeError):
    """Raised when a classifier, mailbox, store or channel cannot serve a call."""


class NotFoundError(LookupError):
    """Raised when nothing is stored under the requested key."""


class RuleNotFoundError(NotFoundError):
    """No classification rule at the given pattern or position."""


class DraftNotFoundError(NotFoundError):
    """No active draft for the initiator."""


class DisambiguationNotFoundError(NotFoundError):
    """No outstanding recipient choice for the initiator."""


class InvalidSelectionError(ValueError):
    """Selection text did not match any of the offered candidates."""

    def __init__(self, selection: str, candidate_count: int) -> None:
        super().__init__(
            f"'{selection}' does not match any candidate; "
            f"reply with a number between 1 and {candidate_count}, "
            "an address or part of a name"
        )
        self.selection = selection
        self.candidate_count = candidate_count


class BucketClassifier(Protocol):
    """Probabilistic classification backend."""

    async def classify(
        self, envelope: MessageEnvelope, constraints: PromptConstraints
    ) -> ClassificationResult:
        """Return a bucket for ``envelope``; raise on backend failure."""
        raise NotImplementedError


class MailboxTransport(Protocol):
    """List, move and search primitives of the mailbox."""

    async def list_messages(
        self, bucket: str | None, limit: int, *, unread_only: bool = False
    ) -> Sequence[MessageEnvelope]:
        """Return up to ``limit`` envelopes from ``bucket`` or every bucket."""
        raise NotImplementedError

    async def search_messages(self, query: str, limit: int) -> Sequence[MessageEnvelope]:
        """Return up to ``limit`` recent messages mentioning ``query``, newest first."""
        raise NotImplementedError

    async def list_folders(self) -> Sequence[str]:
        """Return the labels of every bucket that can hold messages."""
        raise NotImplementedError

    async def resolve_bucket_handle(self, bucket: str) -> str | None:
        """Return the concrete destination handle for ``bucket`` if it exists."""
        raise NotImplementedError

    async def move_message(
        self, message_id: str, destination: str, source: str | None = None
    ) -> None:
        """Move a message into ``destination``; raise on failure."""
        raise NotImplementedError

    async def search_contacts(self, name: str) -> Sequence[Contact]:
        """Return correspondents whose name or address contains ``name``."""
        raise NotImplementedError


class RuleRepository(Protocol):
    """Durable mirror of classification rules and free-text instructions."""

    def persist_rule(self, rule: ClassificationRule) -> None:
        """Store a rule keyed by its creation order."""
        raise NotImplementedError

    def delete_rule(self, pattern: str, created_order: int | None = None) -> int:
        """Delete one rule, or every rule with ``pattern``; return rows removed."""
        raise NotImplementedError

    def clear_rules(self) -> None:
        """Delete every stored rule."""
        raise NotImplementedError

    def load_rules(self) -> list[ClassificationRule]:
        """Return stored rules ordered by creation order."""
        raise NotImplementedError

    def load_instructions(self) -> str | None:
        """Return the stored free-text classifier instructions."""
        raise NotImplementedError

    def save_instructions(self, instructions: str | None) -> None:
        """Replace the stored instructions; ``None`` clears them."""
        raise NotImplementedError


class DraftComposer(Protocol):
    """Text generation for outbound drafts."""

    async def compose(
        self,
        recipient: str,
        intent: str,
        *,
        context: str | None = None,
        tone: str | None = None,
    ) -> DraftContent:
        """Write a subject and body for a new message."""
        raise NotImplementedError

    async def revise(self, session: DraftSession, instructions: str) -> DraftContent:
        """Rewrite ``session`` following ``instructions``."""
        raise NotImplementedError


class Mailer(Protocol):
    """Outbound mail transport."""

    async def send_mail(self, recipient: str, subject: str, body: str) -> None:
        """Deliver a message; raise on failure."""
        raise NotImplementedError


class MessagingChannel(Protocol):
    """Outbound chat transport towards initiators."""

    async def deliver(self, initiator: str, text: str) -> None:
        """Send ``text`` to ``initiator``; raise on failure."""
        raise NotImplementedError


__all__ = [
    "BucketClassifier",
    "CollaboratorUnavailable",
    "DisambiguationNotFoundError",
    "DraftComposer",
    "DraftNotFoundError",
    "InvalidSelectionError",
    "MailboxTransport",
    "Mailer",
    "MessagingChannel",
    "NotFoundError",
    "RuleNotFoundError",
    "RuleRepository",
]
