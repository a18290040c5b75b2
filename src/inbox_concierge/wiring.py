"""Assemble the concierge and its collaborators from application settings."""

from __future__ import annotations

from datetime import timedelta

from inbox_concierge.classification import (
    ClassificationEngine,
    ClassificationMemory,
    Reconciler,
    RuleStore,
)
from inbox_concierge.core import AppSettings, Clock, SystemClock
from inbox_concierge.core.container import ServiceContainer
from inbox_concierge.intelligence import (
    ComposeRequestParser,
    DraftWriter,
    LLMBucketClassifier,
    MailboxSummarizer,
    OllamaClient,
)
from inbox_concierge.orchestrator import Concierge
from inbox_concierge.sessions import DraftSessionManager, RecipientDisambiguationCache
from inbox_concierge.storage import SqliteRuleRepository
from inbox_concierge.transport import HttpChannel, ImapMailbox, SmtpMailer


def build_container(settings: AppSettings, *, clock: Clock | None = None) -> ServiceContainer:
    """Register every service needed to run the concierge."""
    container = ServiceContainer()
    container.override("settings", settings)
    container.override("clock", clock or SystemClock())

    container.register("rule_repository", lambda c: SqliteRuleRepository(settings.storage))
    container.register("rule_store", lambda c: RuleStore(c.resolve("rule_repository")))
    container.register(
        "llm",
        lambda c: OllamaClient(settings.llm)
        if settings.llm.base_url and settings.llm.model
        else None,
    )
    container.register(
        "classifier",
        lambda c: LLMBucketClassifier(llm) if (llm := c.resolve("llm")) else None,
    )
    container.register(
        "engine",
        lambda c: ClassificationEngine(
            c.resolve("rule_store"),
            c.resolve("classifier"),
            default_bucket=settings.classification.default_bucket,
            degraded_confidence=settings.classification.degraded_confidence,
        ),
    )
    container.register(
        "memory", lambda c: ClassificationMemory(settings.classification.memory_size)
    )
    container.register("mailbox", lambda c: ImapMailbox(settings.imap))
    container.register(
        "reconciler",
        lambda c: Reconciler(
            c.resolve("engine"),
            c.resolve("mailbox"),
            memory=c.resolve("memory"),
            clock=c.resolve("clock"),
        ),
    )
    container.register("mailer", lambda c: SmtpMailer(settings.smtp))
    container.register(
        "composer",
        lambda c: DraftWriter(c.resolve("llm"), signature=settings.classification.signature),
    )
    container.register(
        "drafts",
        lambda c: DraftSessionManager(
            c.resolve("composer"),
            c.resolve("mailer"),
            ttl=timedelta(seconds=settings.sessions.draft_ttl_seconds),
            sent_grace=timedelta(seconds=settings.sessions.sent_grace_seconds),
            clock=c.resolve("clock"),
        ),
    )
    container.register(
        "recipients",
        lambda c: RecipientDisambiguationCache(
            ttl=timedelta(seconds=settings.sessions.disambiguation_ttl_seconds),
            clock=c.resolve("clock"),
        ),
    )
    container.register("request_parser", lambda c: ComposeRequestParser(c.resolve("llm")))
    container.register("summarizer", lambda c: MailboxSummarizer(c.resolve("llm")))
    container.register("channel", lambda c: HttpChannel(settings.channel))
    container.register(
        "concierge",
        lambda c: Concierge(
            rule_store=c.resolve("rule_store"),
            reconciler=c.resolve("reconciler"),
            drafts=c.resolve("drafts"),
            recipients=c.resolve("recipients"),
            mailbox=c.resolve("mailbox"),
            request_parser=c.resolve("request_parser"),
            summarizer=c.resolve("summarizer"),
            memory=c.resolve("memory"),
            channel=c.resolve("channel"),
            inbox=settings.imap.inbox,
            reconcile_limit=settings.classification.reconcile_limit,
            rule_apply_limit=settings.classification.rule_apply_limit,
        ),
    )
    return container


__all__ = ["build_container"]
