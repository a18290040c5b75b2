"""Shared fakes for the collaborator protocols used across the test-suite."""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime, timedelta

from inbox_concierge.classification.buckets import canonical_key
from inbox_concierge.core.interfaces import CollaboratorUnavailable
from inbox_concierge.core.models import (
    ClassificationResult,
    ClassificationRule,
    Contact,
    DraftContent,
    DraftSession,
    MessageEnvelope,
)

T0 = datetime(2025, 3, 14, 9, 0, tzinfo=UTC)


class FakeClock:
    """Clock whose time only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> None:
        self.current += timedelta(**delta)


class InMemoryRuleRepository:
    """Rule repository keeping rows in a list; ``failing`` makes writes raise."""

    def __init__(self, rules: list[ClassificationRule] | None = None) -> None:
        self.rules = list(rules or [])
        self.instructions: str | None = None
        self.failing = False

    def _check(self) -> None:
        if self.failing:
            raise CollaboratorUnavailable("disk full")

    def persist_rule(self, rule: ClassificationRule) -> None:
        self._check()
        self.rules = [r for r in self.rules if r.created_order != rule.created_order]
        self.rules.append(rule)

    def delete_rule(self, pattern: str, created_order: int | None = None) -> int:
        self._check()
        before = len(self.rules)
        if created_order is not None:
            self.rules = [r for r in self.rules if r.created_order != created_order]
        else:
            self.rules = [r for r in self.rules if r.pattern.lower() != pattern.lower()]
        return before - len(self.rules)

    def clear_rules(self) -> None:
        self._check()
        self.rules = []

    def load_rules(self) -> list[ClassificationRule]:
        return list(self.rules)

    def load_instructions(self) -> str | None:
        return self.instructions

    def save_instructions(self, instructions: str | None) -> None:
        self._check()
        self.instructions = instructions


class StubClassifier:
    """Classifier returning a fixed category and counting calls."""

    def __init__(self, bucket: str = "professional", confidence: float = 0.8) -> None:
        self.bucket = bucket
        self.confidence = confidence
        self.calls = 0
        self.last_constraints = None

    async def classify(self, envelope, constraints) -> ClassificationResult:
        del envelope
        self.calls += 1
        self.last_constraints = constraints
        return ClassificationResult(self.bucket, self.confidence, "stub classifier")


class ExplodingClassifier:
    """Classifier that must never be reached."""

    async def classify(self, envelope, constraints) -> ClassificationResult:
        raise AssertionError(f"classifier called for {envelope.message_id}")


class UnavailableClassifier:
    """Classifier whose backend is down."""

    async def classify(self, envelope, constraints) -> ClassificationResult:
        del envelope, constraints
        raise CollaboratorUnavailable("backend offline")


class FakeMailbox:
    """Mailbox holding envelopes in memory; moves update ``current_bucket``."""

    def __init__(
        self,
        folders: list[str],
        messages: list[MessageEnvelope] | None = None,
        contacts: list[Contact] | None = None,
    ) -> None:
        self.folders = list(folders)
        self.messages = {m.message_id: m for m in messages or []}
        self.contacts = list(contacts or [])
        self.moves: list[tuple[str, str, str | None]] = []
        self.resolved: list[str] = []
        self.failing_moves: set[str] = set()
        self.unread: set[str] = set()

    async def list_messages(self, bucket, limit, *, unread_only=False):
        if limit <= 0:
            return []
        selected = [
            m
            for m in self.messages.values()
            if (bucket is None or canonical_key(m.current_bucket) == canonical_key(bucket))
            and (not unread_only or m.message_id in self.unread)
        ]
        return selected[-limit:]

    async def search_messages(self, query, limit):
        needle = query.lower()
        found = [
            m
            for m in self.messages.values()
            if any(
                needle in (value or "").lower()
                for value in (m.sender, m.subject, m.preview_text)
            )
        ]
        return found[:limit]

    async def list_folders(self):
        return list(self.folders)

    async def resolve_bucket_handle(self, bucket):
        self.resolved.append(bucket)
        for folder in self.folders:
            if canonical_key(folder) == canonical_key(bucket):
                return folder
        return None

    async def move_message(self, message_id, destination, source=None):
        if message_id in self.failing_moves:
            raise CollaboratorUnavailable("move rejected")
        self.moves.append((message_id, destination, source))
        self.messages[message_id] = replace(
            self.messages[message_id],
            current_bucket=destination,
            current_bucket_handle=destination,
        )

    async def search_contacts(self, name):
        needle = name.lower()
        return [
            c for c in self.contacts if needle in c.name.lower() or needle in c.address.lower()
        ]


class StubComposer:
    """Draft composer producing predictable content."""

    def __init__(self) -> None:
        self.revisions: list[str] = []

    async def compose(self, recipient, intent, *, context=None, tone=None) -> DraftContent:
        del context, tone
        return DraftContent(subject=f"About {intent}", body=f"Hello {recipient},\n{intent}")

    async def revise(self, session: DraftSession, instructions: str) -> DraftContent:
        self.revisions.append(instructions)
        return DraftContent(
            subject=session.subject,
            body=f"{session.body}\n[{instructions}]",
            changes=instructions,
        )


class RecordingMailer:
    """Mailer remembering what it sent; ``failures`` sends raise ``error`` first."""

    def __init__(self, failures: int = 0, error: Exception | None = None) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.failures = failures
        self.error = error or CollaboratorUnavailable("smtp down")

    async def send_mail(self, recipient: str, subject: str, body: str) -> None:
        if self.failures:
            self.failures -= 1
            raise self.error
        self.sent.append((recipient, subject, body))


def envelope(
    message_id: str,
    *,
    sender: str = "someone@example.com",
    display_name: str = "",
    subject: str = "Hello",
    preview: str = "",
    bucket: str | None = "INBOX",
    received_at: datetime | None = None,
) -> MessageEnvelope:
    return MessageEnvelope(
        message_id=message_id,
        sender=sender,
        sender_display_name=display_name,
        subject=subject,
        preview_text=preview,
        current_bucket=bucket,
        current_bucket_handle=bucket,
        received_at=received_at,
    )
