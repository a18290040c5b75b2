"""Tests for the HTTP messaging channel."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from inbox_concierge.core.config import ChannelSettings
from inbox_concierge.transport import ChannelError, HttpChannel
from inbox_concierge.transport.channel import split_message


def test_split_message_respects_limit_on_line_boundaries() -> None:
    text = "\n".join(f"line {index:03d}" for index in range(50))

    chunks = split_message(text, 100)

    assert all(len(chunk) <= 100 for chunk in chunks)
    assert "\n".join(chunks) == text


def test_split_message_cuts_overlong_lines() -> None:
    assert split_message("x" * 250, 100) == ["x" * 100, "x" * 100, "x" * 50]


def test_deliver_posts_each_chunk_with_token() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200)

    settings = ChannelSettings(
        webhook_url="http://chat.test/send", token="t0k", max_message_chars=100
    )
    channel = HttpChannel(settings, transport=httpx.MockTransport(handler))

    asyncio.run(channel.deliver("alice", "a" * 150))

    assert len(requests) == 2
    assert requests[0].headers["Authorization"] == "Bearer t0k"
    assert json.loads(requests[0].content) == {"to": "alice", "text": "a" * 100}


def test_deliver_failure_raises_channel_error() -> None:
    channel = HttpChannel(
        ChannelSettings(webhook_url="http://chat.test/send"),
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )

    with pytest.raises(ChannelError):
        asyncio.run(channel.deliver("alice", "hello"))


def test_deliver_without_webhook_is_a_no_op() -> None:
    asyncio.run(HttpChannel(ChannelSettings()).deliver("alice", "hello"))
