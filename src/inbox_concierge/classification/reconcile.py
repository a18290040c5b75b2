"""Converge already-filed messages towards the current rule set."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from inbox_concierge.core.datetime_utils import Clock, SystemClock
from inbox_concierge.core.interfaces import MailboxTransport
from inbox_concierge.core.models import (
    ClassificationRule,
    MessageEnvelope,
    Movement,
    ReconcileFailure,
    ReconcileReport,
)

from .buckets import BucketIdentity
from .engine import ClassificationEngine, ClassificationMemory, remember

LOGGER = logging.getLogger(__name__)

_SUBJECT_PREVIEW = 40


class Reconciler:
    """Move only the messages whose bucket disagrees with classification.

    Envelopes are processed one at a time, in order. A message already in
    its target bucket causes no mailbox I/O, so a second run over the same
    messages with unchanged rules moves nothing. A failure on one message
    is counted and reported without stopping the batch.
    """

    def __init__(
        self,
        engine: ClassificationEngine,
        mailbox: MailboxTransport,
        *,
        memory: ClassificationMemory | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._engine = engine
        self._mailbox = mailbox
        self._memory = memory
        self._clock = clock or SystemClock()

    async def reconcile_bucket(self, bucket: str | None, limit: int) -> ReconcileReport:
        """List ``limit`` messages from ``bucket`` (or all buckets) and reconcile them."""
        if limit < 1:
            raise ValueError("The message count must be at least 1")
        envelopes = await self._mailbox.list_messages(bucket, limit)
        LOGGER.info(
            "Reclassifying %d message(s) from %s",
            len(envelopes),
            bucket or "all buckets",
        )
        return await self.reconcile(envelopes)

    async def apply_rule(
        self, rule: ClassificationRule, bucket: str | None, limit: int
    ) -> ReconcileReport:
        """Re-file the latest ``limit`` messages of ``bucket`` that ``rule`` matches.

        Matching messages go through :meth:`reconcile`, so one that an older
        rule also matches follows the older rule.
        """
        if limit < 1:
            return ReconcileReport()
        envelopes = await self._mailbox.list_messages(bucket, limit)
        matching = [envelope for envelope in envelopes if rule.matches(envelope)]
        LOGGER.info(
            "Rule '%s' matches %d of %d message(s) in %s",
            rule.pattern,
            len(matching),
            len(envelopes),
            bucket or "all buckets",
        )
        return await self.reconcile(matching)

    async def reconcile(self, batch: Iterable[MessageEnvelope]) -> ReconcileReport:
        """Re-file every envelope in ``batch`` whose target bucket changed."""
        report = ReconcileReport()
        handles: dict[str, str] = {}
        for envelope in batch:
            report.analyzed += 1
            try:
                await self._reconcile_one(envelope, report, handles)
            except Exception as exc:  # pylint: disable=broad-except
                LOGGER.warning(
                    "Reclassification failed for message %s: %s",
                    envelope.message_id,
                    exc,
                )
                _fail(report, envelope, str(exc) or type(exc).__name__)

        LOGGER.info(
            "Reclassification done: %d analysed, %d moved, %d unchanged, %d error(s)",
            report.analyzed,
            report.moved,
            report.unchanged,
            report.errors,
        )
        return report

    async def _reconcile_one(
        self,
        envelope: MessageEnvelope,
        report: ReconcileReport,
        handles: dict[str, str],
    ) -> None:
        result = await self._engine.classify(envelope)
        target = BucketIdentity.from_name(result.bucket)
        if target.same_as(envelope.current_bucket):
            report.unchanged += 1
            return

        handle = handles.get(target.key)
        if handle is None:
            handle = await self._mailbox.resolve_bucket_handle(target.label)
            if handle is None:
                LOGGER.warning(
                    "Target bucket '%s' not found; message %s left in place",
                    target.label,
                    envelope.message_id,
                )
                _fail(report, envelope, f"bucket '{target.label}' not found")
                return
            handles[target.key] = handle

        await self._mailbox.move_message(
            envelope.message_id, handle, envelope.current_bucket_handle
        )
        report.moved += 1
        report.movements.append(
            Movement(
                subject=_shorten(envelope.subject),
                source=envelope.current_bucket,
                target=target.label,
                reason=result.reason or "Rule updated",
            )
        )
        remember(self._memory, envelope, target.label, self._clock)
        LOGGER.info(
            "Moved '%s': %s -> %s",
            _shorten(envelope.subject),
            envelope.current_bucket,
            target.label,
        )


def _fail(report: ReconcileReport, envelope: MessageEnvelope, reason: str) -> None:
    report.errors += 1
    report.failures.append(
        ReconcileFailure(
            message_id=envelope.message_id,
            subject=_shorten(envelope.subject),
            reason=reason,
        )
    )


def _shorten(subject: str | None) -> str:
    if not subject:
        return "(no subject)"
    return subject[:_SUBJECT_PREVIEW]


__all__ = ["Reconciler"]
