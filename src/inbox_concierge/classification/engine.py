"""Rule-first classification with a probabilistic fallback."""

from __future__ import annotations

import logging
import math
from collections import deque
from collections.abc import Sequence

from inbox_concierge.core.datetime_utils import Clock, SystemClock, display_time
from inbox_concierge.core.interfaces import BucketClassifier, CollaboratorUnavailable
from inbox_concierge.core.models import (
    ClassificationMemoryEntry,
    ClassificationResult,
    MessageEnvelope,
    PromptConstraints,
)

from .buckets import DEFAULT_CATEGORIES
from .rules import RuleStore

LOGGER = logging.getLogger(__name__)


class ClassificationMemory:
    """Bounded FIFO of recent classifications for activity reports."""

    def __init__(self, capacity: int = 100) -> None:
        self._entries: deque[ClassificationMemoryEntry] = deque(maxlen=capacity)

    def record(self, entry: ClassificationMemoryEntry) -> None:
        """Append ``entry``, dropping the oldest one when full."""
        self._entries.append(entry)

    def recent(self, limit: int | None = None) -> list[ClassificationMemoryEntry]:
        """Return entries newest first."""
        newest_first = list(reversed(self._entries))
        return newest_first if limit is None else newest_first[:limit]

    def by_bucket(self) -> dict[str, list[ClassificationMemoryEntry]]:
        """Group entries per bucket, newest first within each group."""
        grouped: dict[str, list[ClassificationMemoryEntry]] = {}
        for entry in self.recent():
            grouped.setdefault(entry.bucket, []).append(entry)
        return grouped

    def summary(self, limit: int = 20) -> str:
        """Render the latest ``limit`` entries grouped by bucket."""
        entries = self.recent(limit)
        if not entries:
            return "No recent classifications."
        grouped: dict[str, list[ClassificationMemoryEntry]] = {}
        for entry in entries:
            grouped.setdefault(entry.bucket, []).append(entry)
        lines = [f"Last {len(entries)} classification(s):"]
        for bucket, items in grouped.items():
            lines.append(f"\n{bucket} ({len(items)})")
            lines.extend(
                f"  - {display_time(item.classified_at)} {item.subject[:50]} ({item.sender})"
                for item in items
            )
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self._entries)


class ClassificationEngine:
    """Assign each envelope to exactly one bucket.

    User rules are evaluated before the classifier and a matching rule
    returns without consulting it, so a declared rule is never overridden.
    """

    def __init__(
        self,
        rule_store: RuleStore,
        classifier: BucketClassifier | None,
        *,
        categories: Sequence[str] = DEFAULT_CATEGORIES,
        default_bucket: str = "newsletter",
        degraded_confidence: float = 0.3,
    ) -> None:
        self._rule_store = rule_store
        self._classifier = classifier
        self._categories = tuple(categories)
        self._default_bucket = default_bucket
        self._degraded_confidence = degraded_confidence

    async def classify(self, envelope: MessageEnvelope) -> ClassificationResult:
        """Return the destination bucket for ``envelope``."""
        rule = self._rule_store.first_match(envelope)
        if rule is not None:
            LOGGER.info(
                "Custom rule '%s' files %s into %s",
                rule.pattern,
                envelope.sender,
                rule.folder,
            )
            return ClassificationResult(
                bucket=rule.folder,
                confidence=1.0,
                reason=f"Custom rule: {rule.pattern}",
                rule=rule,
            )

        if self._classifier is None:
            return self._degraded("no classifier configured")

        constraints = PromptConstraints(
            categories=self._categories,
            rules=tuple(self._rule_store.list_rules()),
            instructions=self._rule_store.instructions,
        )
        try:
            result = await self._classifier.classify(envelope, constraints)
        except (CollaboratorUnavailable, ValueError) as exc:
            LOGGER.warning(
                "Classifier failed for message %s: %s", envelope.message_id, exc
            )
            return self._degraded(str(exc))

        if not result.bucket.strip():
            return self._degraded("classifier returned an empty bucket")
        if not math.isfinite(result.confidence):
            return self._degraded("classifier returned a non-finite confidence")
        return ClassificationResult(
            bucket=result.bucket.strip(),
            confidence=min(max(result.confidence, 0.0), 1.0),
            reason=result.reason,
        )

    def _degraded(self, detail: str) -> ClassificationResult:
        return ClassificationResult(
            bucket=self._default_bucket,
            confidence=self._degraded_confidence,
            reason=f"Default classification (degraded mode: {detail})",
            degraded=True,
        )


def remember(
    memory: ClassificationMemory | None,
    envelope: MessageEnvelope,
    bucket: str,
    clock: Clock | None = None,
) -> None:
    """Record a filing in ``memory`` when one is configured."""
    if memory is None:
        return
    memory.record(
        ClassificationMemoryEntry(
            message_id=envelope.message_id,
            subject=envelope.subject,
            sender=envelope.sender,
            bucket=bucket,
            classified_at=(clock or SystemClock()).now(),
        )
    )


__all__ = ["ClassificationEngine", "ClassificationMemory", "remember"]
