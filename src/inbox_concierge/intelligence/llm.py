"""LLM client abstractions used by intelligence features."""

from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import urljoin

import httpx

from inbox_concierge.core.config import LlmSettings
from inbox_concierge.core.interfaces import CollaboratorUnavailable

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*|\s*```")


class LLMError(CollaboratorUnavailable):
    """Raised when the LLM provider fails to respond as expected."""


class LLMClient(Protocol):
    """Protocol describing the minimal LLM client behaviour."""

    @property
    def provider_id(self) -> str:
        """Identifier describing the backing model/provider."""
        raise NotImplementedError

    async def generate(self, prompt: str) -> str:
        """Return the raw text completion for ``prompt``."""
        raise NotImplementedError


@dataclass(slots=True)
class OllamaClient:
    """Thin asynchronous client for the Ollama HTTP API."""

    settings: LlmSettings
    attempts: int = 3

    async def generate(self, prompt: str) -> str:
        """Send a completion request to the Ollama server."""
        endpoint = _resolve_endpoint(self.settings.base_url)
        options: dict[str, object] = {"temperature": self.settings.temperature}
        if self.settings.max_output_tokens is not None:
            options["num_predict"] = self.settings.max_output_tokens
        payload: dict[str, object] = {
            "model": self.settings.model,
            "prompt": prompt,
            "stream": False,
            "options": options,
        }
        data: dict[str, Any] | None = None
        last_error: Exception | None = None
        async with httpx.AsyncClient(timeout=self.settings.timeout_seconds) as client:
            for attempt in range(1, self.attempts + 1):
                try:
                    response = await client.post(endpoint, json=payload)
                    response.raise_for_status()
                    data = response.json()
                    break
                except httpx.HTTPError as exc:  # pragma: no cover - network dependent
                    last_error = exc
                except json.JSONDecodeError as exc:
                    raise LLMError("LLM returned invalid JSON") from exc

                if attempt < self.attempts:
                    await asyncio.sleep(min(2**attempt, 8))

        if data is None:
            raise LLMError("LLM request failed after retries") from last_error

        result = data.get("response")
        if not isinstance(result, str):
            raise LLMError("LLM response missing 'response' field")
        return result

    @property
    def provider_id(self) -> str:
        """Return a human readable identifier for the configured model."""
        return f"ollama:{self.settings.model}"


def parse_json_object(raw: str) -> dict[str, Any]:
    """Parse a JSON object from model output, ignoring markdown fences."""
    cleaned = _FENCE_PATTERN.sub("", raw).strip()
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ValueError("Model output was not valid JSON") from exc
    if not isinstance(payload, dict):
        raise ValueError("Model output was not a JSON object")
    return payload


def _resolve_endpoint(base_url: str) -> str:
    trimmed = base_url.rstrip("/") + "/"
    return urljoin(trimmed, "api/generate")


__all__ = ["LLMClient", "OllamaClient", "LLMError", "parse_json_object"]
