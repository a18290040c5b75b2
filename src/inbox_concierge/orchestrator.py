"""Route free-text chat commands onto the classification and drafting core."""

from __future__ import annotations

import logging
import re

from inbox_concierge.classification import (
    ClassificationMemory,
    Reconciler,
    RuleStore,
)
from inbox_concierge.core.interfaces import (
    CollaboratorUnavailable,
    InvalidSelectionError,
    MailboxTransport,
    MessagingChannel,
    NotFoundError,
)
from inbox_concierge.core.models import (
    ComposeRequest,
    DraftSession,
    MessageEnvelope,
    RecipientDisambiguation,
    ReconcileReport,
)
from inbox_concierge.intelligence import (
    ComposeRequestParser,
    DraftReply,
    MailboxDigest,
    MailboxSummarizer,
    interpret_draft_reply,
    looks_like_compose_request,
)
from inbox_concierge.sessions import DraftSessionManager, RecipientDisambiguationCache

LOGGER = logging.getLogger(__name__)

MAX_REPORTED_MOVEMENTS = 10
DEFAULT_DIGEST_COUNT = 20
MAX_DIGEST_COUNT = 50
MAX_SEARCH_RESULTS = 10

_LIST_RULES = re.compile(r"^(?:list\s+|show\s+)?rules$", re.IGNORECASE)
_ADD_RULE = re.compile(
    r"^(?:add\s+)?rule\s+(?:(?P<match_type>sender|subject|contains)\s+)?"
    r"(?P<pattern>.+?)\s*->\s*(?P<folder>.+)$",
    re.IGNORECASE,
)
_REMOVE_RULE = re.compile(r"^(?:remove|delete)\s+rule\s+(?P<target>.+)$", re.IGNORECASE)
_CLEAR_RULES = re.compile(r"^clear\s+(?:all\s+)?rules$", re.IGNORECASE)
_SET_INSTRUCTIONS = re.compile(r"^instructions?\s*:\s*(?P<text>.+)$", re.IGNORECASE | re.DOTALL)
_SHOW_INSTRUCTIONS = re.compile(r"^(?:show\s+)?instructions?$", re.IGNORECASE)
_RESET_INSTRUCTIONS = re.compile(r"^(?:reset|clear)\s+instructions?$", re.IGNORECASE)
_RECLASSIFY = re.compile(r"^(?:reclassify|reconcile)(?:\s+(?P<args>.+))?$", re.IGNORECASE)
_SORT_INBOX = re.compile(r"^sort(?:\s+(?:my\s+)?inbox)?(?:\s+(?P<limit>\d+))?$", re.IGNORECASE)
_MEMORY = re.compile(r"^(?:memory|recent|history)$", re.IGNORECASE)
_SUMMARY = re.compile(
    r"^(?:summary|summari[sz]e|digest)(?:\s+(?:my\s+)?(?:inbox|mail|e-?mails?))?"
    r"(?:\s+(?P<limit>\d+))?$",
    re.IGNORECASE,
)
_UNREAD = re.compile(
    r"^unread(?:\s+(?:mail|e-?mails?|messages?))?(?:\s+(?P<limit>\d+))?$", re.IGNORECASE
)
_SEARCH = re.compile(r"^(?:search|find)\s+(?:for\s+)?(?P<query>.+)$", re.IGNORECASE)
_FOLDERS = re.compile(r"^(?:list\s+|show\s+)?folders$", re.IGNORECASE)
_HELP = re.compile(r"^(?:help|\?|start)$", re.IGNORECASE)

HELP_TEXT = """Available commands:
- rules: list classification rules
- rule [sender|subject|contains] <pattern> -> <folder>: add a rule and file matching inbox mail
- remove rule <pattern or number>: remove rules
- clear rules: remove every rule
- instructions: <text> / reset instructions: classifier guidance
- reclassify [folder] [count]: re-file messages after a rule change
- sort inbox [count]: file the latest inbox messages
- memory: recent classifications
- summary [count] / unread [count]: digest of the latest or unread inbox mail
- search <words>: find messages in every folder
- folders: list mail folders
- send an email to <name or address> to <what to say>: draft a message"""


class Concierge:
    """Turn one chat message into core operations and a textual reply.

    Replies while a draft is open are about that draft; replies while a
    recipient choice is open pick the recipient. Everything else is a
    command. Core errors are rendered as text and never escape.
    """

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        *,
        rule_store: RuleStore,
        reconciler: Reconciler,
        drafts: DraftSessionManager,
        recipients: RecipientDisambiguationCache,
        mailbox: MailboxTransport,
        request_parser: ComposeRequestParser,
        summarizer: MailboxSummarizer | None = None,
        memory: ClassificationMemory | None = None,
        channel: MessagingChannel | None = None,
        inbox: str = "INBOX",
        reconcile_limit: int = 30,
        rule_apply_limit: int = 200,
    ) -> None:
        self._rule_store = rule_store
        self._reconciler = reconciler
        self._drafts = drafts
        self._recipients = recipients
        self._mailbox = mailbox
        self._request_parser = request_parser
        self._summarizer = summarizer or MailboxSummarizer(None)
        self._memory = memory or ClassificationMemory()
        self._channel = channel
        self._inbox = inbox
        self._reconcile_limit = reconcile_limit
        self._rule_apply_limit = rule_apply_limit

    @property
    def drafts(self) -> DraftSessionManager:
        return self._drafts

    @property
    def recipients(self) -> RecipientDisambiguationCache:
        return self._recipients

    async def handle(self, initiator: str, text: str) -> str:
        """Process ``text`` from ``initiator`` and return the reply."""
        message = text.strip()
        if not message:
            return HELP_TEXT
        try:
            return await self._route(initiator, message)
        except InvalidSelectionError as exc:
            return f"❌ {exc}"
        except NotFoundError as exc:
            return f"❌ {exc}. Start again with a new request."
        except CollaboratorUnavailable as exc:
            LOGGER.warning("Collaborator failure while handling %s: %s", initiator, exc)
            return f"⚠️ Service unavailable: {exc}"
        except ValueError as exc:
            return f"❌ {exc}"
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.exception("Unexpected failure while handling %s", initiator)
            return f"⚠️ Something went wrong: {exc}"

    async def handle_and_deliver(self, initiator: str, text: str) -> str:
        """Handle ``text`` and push the reply through the messaging channel."""
        reply = await self.handle(initiator, text)
        if self._channel is not None:
            try:
                await self._channel.deliver(initiator, reply)
            except CollaboratorUnavailable as exc:
                LOGGER.warning("Could not deliver reply to %s: %s", initiator, exc)
        return reply

    def purge_expired(self) -> int:
        """Drop expired drafts and recipient choices."""
        purged = self._drafts.purge_expired() + self._recipients.purge_expired()
        if purged:
            LOGGER.info("Purged %d expired session(s)", purged)
        return purged

    # Routing -----------------------------------------------------------------
    async def _route(self, initiator: str, message: str) -> str:
        if self._drafts.has_pending(initiator):
            reply = await self._handle_draft_reply(initiator, message)
            if reply is not None:
                return reply

        if self._recipients.has_pending(initiator) and not _is_command(message):
            return await self._handle_recipient_choice(initiator, message)

        return await self._handle_command(initiator, message)

    async def _handle_draft_reply(self, initiator: str, message: str) -> str | None:
        decision = interpret_draft_reply(message)
        if decision is DraftReply.SEND:
            try:
                result = await self._drafts.send(initiator)
            except CollaboratorUnavailable as exc:
                return (
                    f"❌ Sending failed: {exc}\n"
                    'The draft is kept; reply "send" to try again.'
                )
            return f"✅ Email sent to {result.recipient}\nSubject: {result.subject}"
        if decision is DraftReply.CANCEL:
            await self._drafts.cancel(initiator)
            return "🗑️ Draft cancelled."
        if decision is DraftReply.NEW_REQUEST:
            await self._drafts.cancel(initiator)
            LOGGER.info("Draft for %s dropped for a new request", initiator)
            if looks_like_compose_request(message):
                return None
            return "🗑️ Draft discarded. Who should the new email go to, and what should it say?"
        session = await self._drafts.revise(initiator, message)
        return render_draft(session)

    async def _handle_recipient_choice(self, initiator: str, message: str) -> str:
        if interpret_draft_reply(message) is DraftReply.CANCEL:
            self._recipients.discard(initiator)
            return "Recipient choice cancelled."
        resolved = self._recipients.resolve(initiator, message)
        request = resolved.request
        session = await self._drafts.compose(
            initiator,
            resolved.recipient,
            request.intent,
            context=request.context,
            tone=request.tone,
        )
        return render_draft(session)

    async def _handle_command(self, initiator: str, message: str) -> str:
        if _HELP.match(message):
            return HELP_TEXT
        if _LIST_RULES.match(message):
            return self._render_rules()
        if _CLEAR_RULES.match(message):
            change = await self._rule_store.clear_all()
            return _with_durability(f"🗑️ {len(change.rules)} rule(s) removed.", change.durable)
        if match := _REMOVE_RULE.match(message):
            return await self._remove_rule(match.group("target").strip())
        if match := _ADD_RULE.match(message):
            return await self._add_rule(
                match.group("pattern"),
                match.group("folder"),
                (match.group("match_type") or "sender").lower(),
            )
        if _RESET_INSTRUCTIONS.match(message):
            durable = await self._rule_store.clear_instructions()
            return _with_durability("✅ Classification instructions cleared.", durable)
        if match := _SET_INSTRUCTIONS.match(message):
            durable = await self._rule_store.set_instructions(match.group("text"))
            return _with_durability("✅ Classification instructions saved.", durable)
        if _SHOW_INSTRUCTIONS.match(message):
            return self._rule_store.instructions or "No classification instructions set."
        if match := _SORT_INBOX.match(message):
            limit = _count(match.group("limit"), self._reconcile_limit)
            report = await self._reconciler.reconcile_bucket(self._inbox, limit)
            return render_report(report)
        if match := _RECLASSIFY.match(message):
            bucket, limit = _scope(match.group("args"), self._reconcile_limit)
            report = await self._reconciler.reconcile_bucket(bucket, limit)
            return render_report(report)
        if _MEMORY.match(message):
            return self._memory.summary()
        if match := _SUMMARY.match(message):
            return await self._digest(_count(match.group("limit"), DEFAULT_DIGEST_COUNT))
        if match := _UNREAD.match(message):
            return await self._digest(
                _count(match.group("limit"), DEFAULT_DIGEST_COUNT), unread_only=True
            )
        if _FOLDERS.match(message):
            return render_folders(await self._mailbox.list_folders())
        if match := _SEARCH.match(message):
            query = match.group("query").strip()
            results = await self._mailbox.search_messages(query, MAX_SEARCH_RESULTS)
            return render_search_results(query, results)
        if looks_like_compose_request(message):
            return await self._start_compose(initiator, message)
        return f"I did not understand that.\n\n{HELP_TEXT}"

    # Commands ----------------------------------------------------------------
    async def _add_rule(self, pattern: str, folder: str, match_type: str) -> str:
        change = await self._rule_store.add_rule(pattern, folder, match_type)
        rule = change.rules[0]
        reply = (
            f"✅ Rule added: {rule.match_type.value} contains '{rule.pattern}' -> {rule.folder}"
        )
        if self._rule_apply_limit < 1:
            reply += '\nSay "reclassify" to apply it to filed messages.'
        else:
            try:
                report = await self._reconciler.apply_rule(
                    rule, self._inbox, self._rule_apply_limit
                )
            except CollaboratorUnavailable as exc:
                LOGGER.warning("Could not apply rule '%s' to the inbox: %s", rule.pattern, exc)
                reply += f"\n⚠️ Could not apply it to existing mail: {exc}"
            else:
                reply += "\n" + render_rule_application(report)
        return _with_durability(reply, change.durable)

    async def _digest(self, count: int, *, unread_only: bool = False) -> str:
        count = min(count, MAX_DIGEST_COUNT)
        envelopes = await self._mailbox.list_messages(
            self._inbox, count, unread_only=unread_only
        )
        if not envelopes:
            if unread_only:
                return "✅ No unread mail, your inbox is up to date."
            return "📭 No messages found."
        focus = "unread messages" if unread_only else None
        digest = await self._summarizer.summarize(envelopes, focus=focus)
        title = (
            f"📬 {len(envelopes)} unread message(s)"
            if unread_only
            else f"📊 Summary of the last {len(envelopes)} message(s)"
        )
        return render_digest(title, digest)

    async def _remove_rule(self, target: str) -> str:
        if target.lstrip("#").isdigit():
            change = await self._rule_store.remove_rule_at(int(target.lstrip("#")))
        else:
            change = await self._rule_store.remove_rule(target)
            if not change:
                return f"No rule with pattern '{target}'."
        removed = ", ".join(f"'{rule.pattern}' -> {rule.folder}" for rule in change.rules)
        return _with_durability(f"🗑️ Rule removed: {removed}", change.durable)

    def _render_rules(self) -> str:
        rules = self._rule_store.list_rules()
        if not rules:
            return "No classification rules yet."
        lines = [f"📋 {len(rules)} rule(s), first match wins:"]
        lines.extend(
            f"{position}. {rule.match_type.value} contains '{rule.pattern}' -> {rule.folder}"
            for position, rule in enumerate(rules, start=1)
        )
        if self._rule_store.instructions:
            lines.append(f"\nInstructions: {self._rule_store.instructions}")
        return "\n".join(lines)

    async def _start_compose(self, initiator: str, message: str) -> str:
        parsed = await self._request_parser.parse(message)
        if not parsed.recipient:
            return (
                "Who should I write to? For example: "
                '"send an email to jean@example.com to say hello".'
            )
        request = ComposeRequest(
            intent=parsed.intent, context=parsed.context, tone=parsed.tone
        )
        if "@" in parsed.recipient:
            return await self._compose(initiator, parsed.recipient, request)

        contacts = await self._mailbox.search_contacts(parsed.recipient)
        if not contacts:
            return (
                f"No contact found for '{parsed.recipient}'. "
                "Give me the email address instead."
            )
        if len(contacts) == 1:
            return await self._compose(initiator, contacts[0].address, request)
        entry = self._recipients.record(initiator, parsed.recipient, contacts, request)
        return render_candidates(entry)

    async def _compose(
        self, initiator: str, recipient: str, request: ComposeRequest
    ) -> str:
        session = await self._drafts.compose(
            initiator,
            recipient,
            request.intent,
            context=request.context,
            tone=request.tone,
        )
        return render_draft(session)


def render_draft(session: DraftSession) -> str:
    """Render a draft with the replies it accepts."""
    header = "📝 Draft"
    if session.revision_count:
        header = f"📝 Draft (revision {session.revision_count})"
    return (
        f"{header}\n"
        f"To: {session.recipient}\n"
        f"Subject: {session.subject}\n\n"
        f"{session.body}\n\n"
        'Reply "send" to send it, "cancel" to discard it, '
        "or describe the changes you want."
    )


def render_candidates(entry: RecipientDisambiguation) -> str:
    """Render the numbered contacts offered for a recipient choice."""
    lines = [f"Several contacts match '{entry.queried_name}':"]
    lines.extend(
        f"{position}. {contact.name} <{contact.address}>"
        for position, contact in enumerate(entry.candidates, start=1)
    )
    lines.append("Reply with a number, a name or an email address.")
    return "\n".join(lines)


def render_report(report: ReconcileReport, limit: int = MAX_REPORTED_MOVEMENTS) -> str:
    """Render a reconciliation report with at most ``limit`` movements."""
    lines = [
        "🔄 Reclassification complete",
        f"Analysed: {report.analyzed}",
        f"Moved: {report.moved}",
        f"Unchanged: {report.unchanged}",
        f"Errors: {report.errors}",
    ]
    if report.movements:
        lines.append("")
        lines.extend(
            f"- {movement.subject}: {movement.source or '?'} -> {movement.target}"
            for movement in report.movements[:limit]
        )
        hidden = len(report.movements) - limit
        if hidden > 0:
            lines.append(f"... and {hidden} more")
    return "\n".join(lines)


def render_rule_application(report: ReconcileReport) -> str:
    """Render how many existing inbox messages a new rule filed."""
    if not report.analyzed:
        return "No inbox messages match it yet."
    lines = [f"📦 {report.moved}/{report.analyzed} matching inbox message(s) moved"]
    if report.unchanged:
        lines.append(f"{report.unchanged} left in place")
    if report.errors:
        lines.append(f"⚠️ {report.errors} could not be moved")
    return "\n".join(lines)


def render_digest(title: str, digest: MailboxDigest) -> str:
    """Render a mailbox digest with its suggested actions."""
    lines = [title, "", digest.summary]
    if digest.action_items:
        lines.append("")
        lines.append("💡 Suggested actions:")
        lines.extend(f"- {item}" for item in digest.action_items)
    return "\n".join(lines)


def render_search_results(query: str, results: list[MessageEnvelope]) -> str:
    """Render messages found by a search, newest first."""
    if not results:
        return f"🔍 No messages found for '{query}'."
    lines = [f"🔍 {len(results)} message(s) found for '{query}':"]
    for envelope in results:
        sender = envelope.sender_display_name or envelope.sender or "unknown sender"
        day = f" ({envelope.received_at:%Y-%m-%d})" if envelope.received_at else ""
        lines.append(
            f"- [{envelope.current_bucket}] {sender}: {envelope.subject or '(no subject)'}{day}"
        )
    return "\n".join(lines)


def render_folders(folders: list[str]) -> str:
    """Render the mailbox folder names."""
    if not folders:
        return "No folders found."
    lines = ["📁 Folders:"]
    lines.extend(f"  • {name}" for name in folders)
    return "\n".join(lines)


def _count(raw: str | None, default: int) -> int:
    """Parse an optional message count from a command."""
    if raw is None:
        return default
    count = int(raw)
    if count < 1:
        raise ValueError("The message count must be at least 1")
    return count


def _scope(args: str | None, default_limit: int) -> tuple[str | None, int]:
    """Split "[bucket] [count]" command arguments."""
    words = (args or "").split()
    limit = default_limit
    if words and words[-1].isdigit():
        limit = int(words.pop())
    return (" ".join(words) or None), limit


def _with_durability(reply: str, durable: bool) -> str:
    if durable:
        return reply
    return f"{reply}\n⚠️ Could not save to storage; the change lasts until restart."


def _is_command(message: str) -> bool:
    return any(
        pattern.match(message)
        for pattern in (
            _HELP,
            _LIST_RULES,
            _CLEAR_RULES,
            _REMOVE_RULE,
            _ADD_RULE,
            _MEMORY,
            _SORT_INBOX,
            _SUMMARY,
            _UNREAD,
            _SEARCH,
            _FOLDERS,
        )
    ) or looks_like_compose_request(message)


__all__ = [
    "Concierge",
    "HELP_TEXT",
    "render_candidates",
    "render_digest",
    "render_draft",
    "render_folders",
    "render_report",
    "render_rule_application",
    "render_search_results",
]
