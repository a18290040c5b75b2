"""Pending recipient choices for compose requests that named several contacts."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from datetime import timedelta

from inbox_concierge.core.datetime_utils import Clock
from inbox_concierge.core.interfaces import (
    DisambiguationNotFoundError,
    InvalidSelectionError,
)
from inbox_concierge.core.models import (
    ComposeRequest,
    Contact,
    RecipientDisambiguation,
    ResolvedRecipient,
)

from .store import SessionStore

LOGGER = logging.getLogger(__name__)

_INDEX_PATTERN = re.compile(r"^#?\s*(\d+)\s*[.)]?$")
_ADDRESS_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+$")


class RecipientDisambiguationCache:
    """One outstanding contact choice per initiator, valid for ``ttl``."""

    def __init__(
        self, *, ttl: timedelta = timedelta(minutes=5), clock: Clock | None = None
    ) -> None:
        self._pending: SessionStore[RecipientDisambiguation] = SessionStore(
            ttl, clock, name="recipient choice"
        )

    def record(
        self,
        initiator: str,
        queried_name: str,
        candidates: Sequence[Contact],
        originating_request: ComposeRequest,
    ) -> RecipientDisambiguation:
        """Remember the candidates offered to ``initiator``, replacing older ones."""
        if not candidates:
            raise ValueError("A recipient choice needs at least one candidate")
        entry = RecipientDisambiguation(
            queried_name=queried_name,
            candidates=tuple(candidates),
            originating_request=originating_request,
            timestamp=self._pending.clock.now(),
        )
        self._pending.put(initiator, entry)
        LOGGER.info(
            "Offered %d contact(s) for '%s' to %s",
            len(entry.candidates),
            queried_name,
            initiator,
        )
        return entry

    def get(self, initiator: str) -> RecipientDisambiguation | None:
        """Return the live choice for ``initiator``."""
        return self._pending.get(initiator)

    def has_pending(self, initiator: str) -> bool:
        """Return whether ``initiator`` still has to pick a recipient."""
        return self._pending.get(initiator) is not None

    def discard(self, initiator: str) -> bool:
        """Drop the outstanding choice; return whether there was one."""
        return self._pending.pop(initiator) is not None

    def purge_expired(self) -> int:
        """Drop lapsed choices."""
        return self._pending.purge_expired()

    def resolve(self, initiator: str, selection_text: str) -> ResolvedRecipient:
        """Turn a reply into a recipient and purge the choice.

        Accepted replies are a 1-based index, an email address (used as given
        even when not among the candidates) or part of a candidate's name or
        address, where the first candidate in offered order wins. An invalid
        reply leaves the choice in place so the user can try again.
        """
        entry = self._pending.get(initiator)
        if entry is None:
            raise DisambiguationNotFoundError(
                f"No recipient choice pending for {initiator}"
            )

        contact = _select(entry.candidates, selection_text.strip())
        self._pending.pop(initiator)
        LOGGER.info("Recipient for %s resolved to %s", initiator, contact.address)
        return ResolvedRecipient(
            recipient=contact.address,
            display_name=contact.name,
            request=entry.originating_request,
        )


def _select(candidates: tuple[Contact, ...], text: str) -> Contact:
    index_match = _INDEX_PATTERN.match(text)
    if index_match:
        position = int(index_match.group(1))
        if 1 <= position <= len(candidates):
            return candidates[position - 1]
        raise InvalidSelectionError(text, len(candidates))

    if _ADDRESS_PATTERN.match(text):
        address = text.lower()
        for contact in candidates:
            if contact.address.lower() == address:
                return contact
        return Contact(name=text, address=text)

    needle = text.lower()
    if needle:
        for contact in candidates:
            if needle in contact.name.lower() or needle in contact.address.lower():
                return contact
    raise InvalidSelectionError(text, len(candidates))


__all__ = ["RecipientDisambiguationCache"]
