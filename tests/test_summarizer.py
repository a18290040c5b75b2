"""Tests for mailbox digests."""

from __future__ import annotations

import asyncio

import pytest

from inbox_concierge.intelligence import LLMError, MailboxSummarizer
from inbox_concierge.intelligence.summarizer import build_deterministic_digest, is_urgent

from support import envelope


class StubLLM:
    def __init__(self, response: str) -> None:
        self.response = response
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.response


class FailingLLM:
    async def generate(self, prompt: str) -> str:
        raise LLMError("model offline")


MESSAGES = [
    envelope("1", sender="boss@corp.example", subject="Action required: sign the contract"),
    envelope("2", sender="news@shop.example", display_name="Shop", subject="Spring sale"),
]


def test_llm_digest_is_parsed() -> None:
    llm = StubLLM(
        '```json\n{"summary": "One contract to sign.", '
        '"action_items": ["Sign the contract", "  "]}\n```'
    )

    digest = asyncio.run(MailboxSummarizer(llm).summarize(MESSAGES, focus="unread messages"))

    assert digest.summary == "One contract to sign."
    assert digest.action_items == ("Sign the contract",)
    assert digest.message_count == 2
    assert not digest.used_fallback
    assert "Focus: unread messages" in llm.prompts[0]
    assert "Spring sale" in llm.prompts[0]


@pytest.mark.parametrize(
    "llm",
    [FailingLLM(), StubLLM("no json"), StubLLM('{"action_items": []}'), None],
)
def test_unusable_model_falls_back_to_grouped_listing(llm) -> None:
    digest = asyncio.run(MailboxSummarizer(llm).summarize(MESSAGES))

    assert digest.used_fallback
    assert digest.summary.startswith("🔴 Urgent (1)\n- boss@corp.example: Action required")
    assert "📋 Other (1)\n- Shop: Spring sale" in digest.summary
    assert digest.action_items == (
        "Deal with 'Action required: sign the contract' from boss@corp.example",
    )


def test_grouped_listing_caps_each_section() -> None:
    messages = [envelope(str(index), subject=f"Note {index}") for index in range(13)]

    digest = build_deterministic_digest(messages)

    assert "📋 Other (13)" in digest.summary
    assert "Note 9" in digest.summary
    assert "Note 10" not in digest.summary
    assert digest.summary.endswith("... and 3 more")
    assert digest.action_items == ()


def test_empty_mailbox_digest() -> None:
    digest = asyncio.run(MailboxSummarizer(StubLLM("unused")).summarize([]))

    assert digest.summary == "No messages."
    assert digest.message_count == 0


def test_urgency_keywords_are_whole_words() -> None:
    assert is_urgent(envelope("1", subject="Invoice OVERDUE"))
    assert is_urgent(envelope("2", preview="please answer asap"))
    assert not is_urgent(envelope("3", subject="Urgently needed: nothing"))
