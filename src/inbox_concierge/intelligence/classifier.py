"""LLM-backed bucket classifier used when no custom rule matches."""

from __future__ import annotations

import logging
import math

from inbox_concierge.core.models import (
    ClassificationResult,
    MessageEnvelope,
    PromptConstraints,
)

from .llm import LLMClient, parse_json_object
from .prompts import build_classification_prompt

LOGGER = logging.getLogger(__name__)


class LLMBucketClassifier:
    """Ask the LLM for one category and turn the reply into a result.

    Raises :class:`~inbox_concierge.intelligence.llm.LLMError` when the
    provider is unreachable and ``ValueError`` when the reply is unusable;
    the engine degrades on either.
    """

    def __init__(self, llm_client: LLMClient) -> None:
        self._llm_client = llm_client

    async def classify(
        self, envelope: MessageEnvelope, constraints: PromptConstraints
    ) -> ClassificationResult:
        prompt = build_classification_prompt(envelope, constraints)
        raw_output = await self._llm_client.generate(prompt)
        payload = parse_json_object(raw_output)

        category = payload.get("category")
        if not isinstance(category, str) or not category.strip():
            raise ValueError("Classifier output missing 'category' field")

        confidence_value = payload.get("confidence", 0.5)
        if not isinstance(confidence_value, (int, float)) or not math.isfinite(confidence_value):
            raise ValueError("Classifier output 'confidence' must be a finite number")

        reason = payload.get("reason")
        LOGGER.debug(
            "%s filed %s as %s", self._llm_client.provider_id, envelope.message_id, category
        )
        return ClassificationResult(
            bucket=category.strip().lower(),
            confidence=float(confidence_value),
            reason=reason if isinstance(reason, str) else "Classified by language model",
        )


__all__ = ["LLMBucketClassifier"]
