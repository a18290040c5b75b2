"""Core domain models used across the application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum


class MatchType(StrEnum):
    """Envelope fields a classification rule is tested against."""

    SENDER = "sender"
    SUBJECT = "subject"
    CONTAINS = "contains"


# pylint: disable=too-many-instance-attributes
@dataclass(frozen=True, slots=True)
class MessageEnvelope:
    """Read-only view of a filed message, supplied by the mailbox."""

    message_id: str
    sender: str
    sender_display_name: str
    subject: str
    preview_text: str
    current_bucket: str | None = None
    current_bucket_handle: str | None = None
    received_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class ClassificationRule:
    """Deterministic pattern-to-bucket mapping.

    ``created_order`` is the precedence key: among custom rules the one with
    the lowest order that matches wins, whatever order they were loaded in.
    """

    pattern: str
    folder: str
    match_type: MatchType = MatchType.SENDER
    created_order: int = 0

    def haystacks(self, envelope: MessageEnvelope) -> tuple[str, ...]:
        """Return the envelope fields selected by this rule's match type."""
        if self.match_type is MatchType.SENDER:
            return (envelope.sender, envelope.sender_display_name)
        if self.match_type is MatchType.SUBJECT:
            return (envelope.subject,)
        return (
            envelope.sender,
            envelope.sender_display_name,
            envelope.subject,
            envelope.preview_text,
        )

    def matches(self, envelope: MessageEnvelope) -> bool:
        """Case-insensitive substring test against the selected fields."""
        needle = self.pattern.lower()
        if not needle:
            return False
        return any(needle in (value or "").lower() for value in self.haystacks(envelope))


@dataclass(frozen=True, slots=True)
class ClassificationResult:
    """Bucket chosen for one envelope."""

    bucket: str
    confidence: float
    reason: str
    rule: ClassificationRule | None = None
    degraded: bool = False


@dataclass(frozen=True, slots=True)
class ClassificationMemoryEntry:
    """Recent classification kept for activity reports."""

    message_id: str
    subject: str
    sender: str
    bucket: str
    classified_at: datetime


@dataclass(frozen=True, slots=True)
class PromptConstraints:
    """Constraints handed to the probabilistic classifier."""

    categories: tuple[str, ...]
    rules: tuple[ClassificationRule, ...] = ()
    instructions: str | None = None


@dataclass(frozen=True, slots=True)
class Movement:
    """One message re-filed during reconciliation."""

    subject: str
    source: str | None
    target: str
    reason: str


@dataclass(frozen=True, slots=True)
class ReconcileFailure:
    """Per-item reason a message could not be reconciled."""

    message_id: str
    subject: str
    reason: str


@dataclass(slots=True)
class ReconcileReport:
    """Aggregated outcome of a reconciliation batch."""

    analyzed: int = 0
    moved: int = 0
    unchanged: int = 0
    errors: int = 0
    movements: list[Movement] = field(default_factory=list)
    failures: list[ReconcileFailure] = field(default_factory=list)


class DraftStatus(StrEnum):
    """Lifecycle of a draft session."""

    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    SENT = "sent"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class ComposeRequest:
    """What the initiator asked to be written."""

    intent: str
    context: str | None = None
    tone: str | None = None


@dataclass(frozen=True, slots=True)
class DraftContent:
    """Subject and body produced by the text generator."""

    subject: str
    body: str
    changes: str | None = None
    used_fallback: bool = False


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class DraftSession:
    """Outbound message being composed for one initiator."""

    initiator: str
    recipient: str
    subject: str
    body: str
    originating_context: str | None
    created_at: datetime
    tone: str | None = None
    status: DraftStatus = DraftStatus.PENDING_APPROVAL
    revision_count: int = 0
    sent_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class SendResult:
    """Outcome of a successful draft send."""

    session: DraftSession
    recipient: str
    subject: str


@dataclass(frozen=True, slots=True)
class Contact:
    """Known correspondent returned by a contact search."""

    name: str
    address: str


@dataclass(frozen=True, slots=True)
class RecipientDisambiguation:
    """Outstanding choice between several contacts for one initiator."""

    queried_name: str
    candidates: tuple[Contact, ...]
    originating_request: ComposeRequest
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class ResolvedRecipient:
    """Recipient picked from a disambiguation, with the request to resume."""

    recipient: str
    display_name: str
    request: ComposeRequest


__all__ = [
    "ClassificationMemoryEntry",
    "ClassificationResult",
    "ClassificationRule",
    "ComposeRequest",
    "Contact",
    "DraftContent",
    "DraftSession",
    "DraftStatus",
    "MatchType",
    "MessageEnvelope",
    "Movement",
    "PromptConstraints",
    "ReconcileFailure",
    "ReconcileReport",
    "RecipientDisambiguation",
    "ResolvedRecipient",
    "SendResult",
]
