"""Ephemeral per-initiator conversation state."""

from .drafts import DraftSessionManager
from .recipients import RecipientDisambiguationCache
from .store import KeyedLocks, SessionStore

__all__ = [
    "DraftSessionManager",
    "KeyedLocks",
    "RecipientDisambiguationCache",
    "SessionStore",
]
