"""FastAPI application receiving chat messages for the concierge."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

from fastapi import FastAPI
from pydantic import BaseModel, ConfigDict, Field

from inbox_concierge.core import AppSettings, load_app_settings
from inbox_concierge.core.container import ServiceContainer
from inbox_concierge.core.interfaces import CollaboratorUnavailable
from inbox_concierge.orchestrator import Concierge
from inbox_concierge.wiring import build_container

LOGGER = logging.getLogger(__name__)


class InboundMessage(BaseModel):
    """Chat message posted by the messaging channel."""

    model_config = ConfigDict(populate_by_name=True)

    sender: str = Field(alias="from", min_length=1, description="Initiator identity")
    text: str = Field(default="", description="Message text")


class ConciergeReply(BaseModel):
    """Reply produced for an inbound message."""

    reply: str


def create_app(
    settings: AppSettings | None = None,
    *,
    container: ServiceContainer | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    app_settings = settings or load_app_settings()
    services = container or build_container(app_settings)
    concierge: Concierge = services.resolve("concierge")
    rule_store = services.resolve("rule_store")
    sweep_interval = app_settings.sessions.sweep_interval_seconds
    app = FastAPI(title="Inbox Concierge")
    background: set[asyncio.Task[None]] = set()

    async def sweep_sessions() -> None:
        while True:
            await asyncio.sleep(sweep_interval)
            concierge.purge_expired()

    @app.on_event("startup")
    async def startup_event() -> None:
        """Load the rules and start the session sweep."""
        try:
            await rule_store.reload()
        except CollaboratorUnavailable as exc:
            LOGGER.warning("Starting without stored rules: %s", exc)
        background.add(asyncio.create_task(sweep_sessions()))

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        """Stop the sweep and release connections."""
        for task in background:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        background.clear()
        services.close()
        LOGGER.info("Concierge services closed")

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "rules": len(rule_store.list_rules()),
            "drafts": concierge.drafts.active_count(),
        }

    @app.post("/webhook", response_model=ConciergeReply)
    async def webhook(message: InboundMessage) -> ConciergeReply:
        LOGGER.debug("Inbound message from %s", message.sender)
        reply = await concierge.handle_and_deliver(message.sender, message.text)
        return ConciergeReply(reply=reply)

    @app.get("/rules")
    async def list_rules() -> list[dict[str, Any]]:
        return [
            {
                "position": position,
                "pattern": rule.pattern,
                "folder": rule.folder,
                "match_type": rule.match_type.value,
            }
            for position, rule in enumerate(rule_store.list_rules(), start=1)
        ]

    return app


__all__ = ["ConciergeReply", "InboundMessage", "create_app"]
