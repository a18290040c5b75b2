"""LLM-backed classification, drafting and request interpretation."""

from .classifier import LLMBucketClassifier
from .drafter import DraftWriter
from .intents import (
    ComposeRequestParser,
    DraftReply,
    ParsedComposeRequest,
    interpret_draft_reply,
    looks_like_compose_request,
)
from .llm import LLMClient, LLMError, OllamaClient
from .summarizer import MailboxDigest, MailboxSummarizer

__all__ = [
    "LLMClient",
    "LLMError",
    "OllamaClient",
    "LLMBucketClassifier",
    "DraftWriter",
    "ComposeRequestParser",
    "DraftReply",
    "ParsedComposeRequest",
    "interpret_draft_reply",
    "looks_like_compose_request",
    "MailboxDigest",
    "MailboxSummarizer",
]
