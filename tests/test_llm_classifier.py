"""Tests for the LLM-backed bucket classifier and JSON parsing."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from inbox_concierge.core.config import LlmSettings
from inbox_concierge.core.models import ClassificationRule, PromptConstraints
from inbox_concierge.intelligence import LLMBucketClassifier, LLMError, OllamaClient
from inbox_concierge.intelligence.llm import parse_json_object

from support import envelope


class StubLLM:
    """LLM stub returning a predetermined response."""

    def __init__(self, response: str) -> None:
        self.response = response
        self.provider_id = "stub-llm"
        self.last_prompt: str | None = None

    async def generate(self, prompt: str) -> str:
        self.last_prompt = prompt
        return self.response


CONSTRAINTS = PromptConstraints(
    categories=("urgent", "newsletter", "finance"),
    rules=(ClassificationRule("github", "Dev", created_order=1),),
    instructions="Payslips are finance",
)


def test_classifier_parses_fenced_json() -> None:
    llm = StubLLM(
        '```json\n{"category": "Finance", "confidence": 0.92, "reason": "bank"}\n```'
    )
    classifier = LLMBucketClassifier(llm)

    result = asyncio.run(classifier.classify(envelope("1", subject="Payslip"), CONSTRAINTS))

    assert result.bucket == "finance"
    assert result.confidence == pytest.approx(0.92)
    assert result.reason == "bank"


def test_prompt_lists_categories_rules_and_instructions() -> None:
    llm = StubLLM('{"category": "urgent"}')
    classifier = LLMBucketClassifier(llm)

    result = asyncio.run(
        classifier.classify(envelope("1", sender="ops@corp.example"), CONSTRAINTS)
    )

    assert result.confidence == 0.5
    assert llm.last_prompt is not None
    assert '"newsletter"' in llm.last_prompt
    assert 'contains "github"' in llm.last_prompt
    assert "Payslips are finance" in llm.last_prompt
    assert "ops@corp.example" in llm.last_prompt


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        '["finance"]',
        '{"confidence": 0.4}',
        '{"category": "finance", "confidence": "high"}',
        '{"category": "finance", "confidence": NaN}',
        '{"category": "finance", "confidence": Infinity}',
    ],
)
def test_unusable_output_raises_value_error(raw: str) -> None:
    classifier = LLMBucketClassifier(StubLLM(raw))

    with pytest.raises(ValueError):
        asyncio.run(classifier.classify(envelope("1"), CONSTRAINTS))


def test_parse_json_object_strips_fences() -> None:
    assert parse_json_object('```\n{"a": 1}\n```') == {"a": 1}


def test_ollama_client_posts_generate_request(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = request.read()
        return httpx.Response(200, json={"response": '{"category": "social"}'})

    real_client = httpx.AsyncClient

    def client_factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", client_factory)
    client = OllamaClient(LlmSettings(base_url="http://llm.test:11434", model="tiny"))

    output = asyncio.run(client.generate("hello"))

    assert output == '{"category": "social"}'
    assert captured["url"] == "http://llm.test:11434/api/generate"
    assert b'"model":"tiny"' in captured["body"].replace(b" ", b"")
    assert client.provider_id == "ollama:tiny"


def test_ollama_client_raises_after_retries(monkeypatch: pytest.MonkeyPatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        del request
        return httpx.Response(503)

    real_client = httpx.AsyncClient

    def client_factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    async def no_sleep(delay: float) -> None:
        del delay

    monkeypatch.setattr(httpx, "AsyncClient", client_factory)
    monkeypatch.setattr(asyncio, "sleep", no_sleep)
    client = OllamaClient(LlmSettings(), attempts=2)

    with pytest.raises(LLMError):
        asyncio.run(client.generate("hello"))
