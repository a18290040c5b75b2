"""Outbound chat channel posting replies to a webhook."""

from __future__ import annotations

import logging

import httpx

from inbox_concierge.core.config import ChannelSettings
from inbox_concierge.core.interfaces import CollaboratorUnavailable

LOGGER = logging.getLogger(__name__)


class ChannelError(CollaboratorUnavailable):
    """Raised when a chat message cannot be delivered."""


class HttpChannel:
    """Deliver text to initiators through an HTTP webhook.

    Long texts are split on line boundaries so each request stays under
    ``max_message_chars``.
    """

    def __init__(
        self,
        settings: ChannelSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport

    async def deliver(self, initiator: str, text: str) -> None:
        if not self._settings.webhook_url:
            LOGGER.debug("No channel webhook configured; dropping reply to %s", initiator)
            return
        headers = {}
        if self._settings.token:
            headers["Authorization"] = f"Bearer {self._settings.token}"
        try:
            async with httpx.AsyncClient(
                timeout=self._settings.timeout_seconds, transport=self._transport
            ) as client:
                for chunk in split_message(text, self._settings.max_message_chars):
                    response = await client.post(
                        self._settings.webhook_url,
                        json={"to": initiator, "text": chunk},
                        headers=headers,
                    )
                    response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ChannelError(f"Failed to deliver message to {initiator}: {exc}") from exc


def split_message(text: str, limit: int) -> list[str]:
    """Split ``text`` into chunks of at most ``limit`` characters."""
    if len(text) <= limit:
        return [text]
    chunks: list[str] = []
    current = ""
    for line in text.splitlines(keepends=True):
        while len(line) > limit:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:limit])
            line = line[limit:]
        if current and len(current) + len(line) > limit:
            chunks.append(current)
            current = ""
        current += line
    if current:
        chunks.append(current)
    return [chunk.rstrip("\n") for chunk in chunks]


__all__ = ["ChannelError", "HttpChannel", "split_message"]
