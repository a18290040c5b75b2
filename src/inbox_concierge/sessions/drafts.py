"""Per-initiator state machine for composing, revising and sending a message."""

from __future__ import annotations

import logging
from datetime import timedelta

from inbox_concierge.core.datetime_utils import Clock
from inbox_concierge.core.interfaces import (
    DraftComposer,
    DraftNotFoundError,
    Mailer,
)
from inbox_concierge.core.models import DraftSession, DraftStatus, SendResult

from .store import KeyedLocks, SessionStore

LOGGER = logging.getLogger(__name__)

_OPEN_STATES = (DraftStatus.PENDING_APPROVAL, DraftStatus.APPROVED)


class DraftSessionManager:
    """Turn a multi-turn chat into one committed outbound message.

    Transitions::

        (none) -> pending_approval
        pending_approval -> pending_approval (revise) | approved | sent | cancelled
        approved -> pending_approval (revise) | sent | cancelled

    ``sent`` and ``cancelled`` are terminal: a cancelled draft is purged at
    once and a sent one stays readable for a grace window, during which any
    further operation reports it as not found. Operations for the same
    initiator are serialised, so two rapid sends cannot both reach the mailer.
    """

    def __init__(
        self,
        composer: DraftComposer,
        mailer: Mailer,
        *,
        ttl: timedelta = timedelta(minutes=30),
        sent_grace: timedelta = timedelta(minutes=5),
        clock: Clock | None = None,
        locks: KeyedLocks | None = None,
    ) -> None:
        self._composer = composer
        self._mailer = mailer
        self._sent_grace = sent_grace
        self._sessions: SessionStore[DraftSession] = SessionStore(ttl, clock, name="draft")
        self._locks = locks or KeyedLocks()

    # Queries -----------------------------------------------------------------
    def get(self, initiator: str) -> DraftSession | None:
        """Return the initiator's draft in any state, or ``None`` once expired."""
        return self._sessions.get(initiator)

    def has_pending(self, initiator: str) -> bool:
        """Return whether the initiator has a draft awaiting a decision."""
        session = self._sessions.get(initiator)
        return session is not None and session.status in _OPEN_STATES

    def active_count(self) -> int:
        """Return the number of live drafts."""
        return self._sessions.active_count()

    def purge_expired(self) -> int:
        """Drop expired drafts; correctness does not depend on calling this."""
        return self._sessions.purge_expired()

    # Transitions -------------------------------------------------------------
    async def compose(
        self,
        initiator: str,
        recipient: str,
        intent: str,
        *,
        context: str | None = None,
        tone: str | None = None,
    ) -> DraftSession:
        """Write a new draft, replacing any draft the initiator already had."""
        async with self._locks.hold(initiator):
            content = await self._composer.compose(
                recipient, intent, context=context, tone=tone
            )
            session = DraftSession(
                initiator=initiator,
                recipient=recipient,
                subject=content.subject,
                body=content.body,
                originating_context=context or intent,
                created_at=self._sessions.clock.now(),
                tone=tone,
            )
            self._sessions.put(initiator, session)
        LOGGER.info(
            "Draft created for %s: '%s' -> %s", initiator, session.subject, recipient
        )
        return session

    async def revise(self, initiator: str, instructions: str) -> DraftSession:
        """Rewrite the open draft and return it to ``pending_approval``."""
        async with self._locks.hold(initiator):
            session = self._require_open(initiator)
            content = await self._composer.revise(session, instructions)
            session.subject = content.subject or session.subject
            session.body = content.body or session.body
            session.revision_count += 1
            session.status = DraftStatus.PENDING_APPROVAL
        LOGGER.info(
            "Draft revised for %s (revision %d)", initiator, session.revision_count
        )
        return session

    async def approve(self, initiator: str) -> DraftSession:
        """Mark the open draft as approved for sending."""
        async with self._locks.hold(initiator):
            session = self._require_open(initiator)
            session.status = DraftStatus.APPROVED
        return session

    async def send(self, initiator: str) -> SendResult:
        """Send the open draft.

        A draft still in ``pending_approval`` is accepted directly, which is
        how an explicit confirmation reply skips :meth:`approve`. On mailer
        failure of any kind the draft goes back to ``pending_approval`` so
        the user can retry without recomposing.
        """
        async with self._locks.hold(initiator):
            session = self._require_open(initiator)
            session.status = DraftStatus.APPROVED
            try:
                await self._mailer.send_mail(session.recipient, session.subject, session.body)
            except Exception:
                session.status = DraftStatus.PENDING_APPROVAL
                LOGGER.warning("Sending draft for %s failed; kept for retry", initiator)
                raise
            session.status = DraftStatus.SENT
            session.sent_at = self._sessions.clock.now()
            self._sessions.expire_after(initiator, self._sent_grace)
        LOGGER.info("Draft sent for %s to %s", initiator, session.recipient)
        return SendResult(session=session, recipient=session.recipient, subject=session.subject)

    async def cancel(self, initiator: str) -> bool:
        """Discard the initiator's draft whatever its state."""
        async with self._locks.hold(initiator):
            session = self._sessions.pop(initiator)
        if session is None:
            return False
        if session.status is not DraftStatus.SENT:
            session.status = DraftStatus.CANCELLED
        LOGGER.info("Draft for %s discarded", initiator)
        return True

    def _require_open(self, initiator: str) -> DraftSession:
        session = self._sessions.get(initiator)
        if session is None or session.status not in _OPEN_STATES:
            raise DraftNotFoundError(f"No draft in progress for {initiator}")
        return session


__all__ = ["DraftSessionManager"]
