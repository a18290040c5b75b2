"""IMAP transport adapter providing the mailbox primitives."""

from __future__ import annotations

import asyncio
import base64
import imaplib
import logging
import re
import threading
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import getaddresses, parseaddr, parsedate_to_datetime
from types import TracebackType

from inbox_concierge.classification.buckets import canonical_key
from inbox_concierge.core.config import ImapSettings
from inbox_concierge.core.datetime_utils import ensure_utc
from inbox_concierge.core.interfaces import CollaboratorUnavailable, MailboxTransport
from inbox_concierge.core.models import Contact, MessageEnvelope

LOGGER = logging.getLogger(__name__)

_LIST_PATTERN = re.compile(
    r'^\((?P<flags>[^)]*)\)\s+(?P<delimiter>"(?:[^"\\]|\\.)*"|NIL)\s+(?P<name>.+)$'
)
_SKIPPED_FLAGS = {"\\noselect", "\\trash", "\\sent", "\\drafts", "\\junk", "\\all"}
_PREVIEW_LENGTH = 200
_CONTACT_SCAN_LIMIT = 200
_SEARCH_SCAN_LIMIT = 200
_MAX_CONTACTS = 10


class ImapError(CollaboratorUnavailable):
    """Wrap low level IMAP errors with additional context."""


class ImapMailbox(MailboxTransport):
    """Mailbox primitives over ``imaplib``.

    Folders are buckets. Each blocking IMAP exchange runs in a worker thread
    and the connection is used by one thread at a time.
    """

    def __init__(self, settings: ImapSettings) -> None:
        """Initialise the client with configuration settings."""
        self._settings = settings
        self._connection: imaplib.IMAP4 | imaplib.IMAP4_SSL | None = None
        self._lock = threading.Lock()
        self._parser = BytesParser(policy=policy.default)

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> ImapMailbox:
        """Connect on entering a context manager scope."""
        with self._lock:
            self._require_connection()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Ensure resources are released on context exit."""
        self.close()

    # MailboxTransport API ----------------------------------------------------
    async def list_messages(
        self, bucket: str | None, limit: int, *, unread_only: bool = False
    ) -> Sequence[MessageEnvelope]:
        """Return the latest ``limit`` envelopes of ``bucket``, or of every bucket."""
        criteria = "UNSEEN" if unread_only else "ALL"
        return await asyncio.to_thread(
            self._locked, self._list_messages, bucket, limit, criteria
        )

    async def search_messages(self, query: str, limit: int) -> Sequence[MessageEnvelope]:
        """Return up to ``limit`` recent messages, in any folder, mentioning ``query``."""
        return await asyncio.to_thread(self._locked, self._search_messages, query, limit)

    async def list_folders(self) -> Sequence[str]:
        """Return the display labels of folders that can hold mail."""
        folders = await asyncio.to_thread(self._locked, self._list_folders)
        return [label for _, label in folders]

    async def resolve_bucket_handle(self, bucket: str) -> str | None:
        """Return the raw IMAP folder name whose label matches ``bucket``."""
        return await asyncio.to_thread(self._locked, self._find_folder, bucket)

    async def move_message(
        self, message_id: str, destination: str, source: str | None = None
    ) -> None:
        """Move UID ``message_id`` from ``source`` (default inbox) to ``destination``."""
        await asyncio.to_thread(
            self._locked,
            self._move,
            message_id,
            destination,
            source or _encode_mailbox_name(self._settings.inbox),
        )

    async def search_contacts(self, name: str) -> Sequence[Contact]:
        """Return inbox correspondents whose name or address contains ``name``."""
        return await asyncio.to_thread(self._locked, self._search_contacts, name)

    def close(self) -> None:
        """Terminate the IMAP session cleanly."""
        with self._lock:
            if self._connection is None:
                return
            try:
                LOGGER.debug("Logging out of IMAP")
                self._connection.logout()
            except imaplib.IMAP4.error:  # pragma: no cover
                LOGGER.debug("IMAP logout raised; suppressing during shutdown")
            finally:
                self._connection = None

    # Blocking implementation -------------------------------------------------
    def _locked(self, operation, *args):
        with self._lock:
            try:
                return operation(*args)
            except imaplib.IMAP4.abort as exc:  # pragma: no cover - network dependent
                self._connection = None
                raise ImapError("IMAP connection was lost") from exc
            except imaplib.IMAP4.error as exc:
                raise ImapError(f"IMAP command failed: {exc}") from exc

    def _list_folders(self) -> list[tuple[str, str]]:
        """Return ``(raw_name, label)`` pairs of folders that can hold mail."""
        connection = self._require_connection()
        status, data = connection.list()
        if status != "OK":
            raise ImapError("Failed to list folders")
        folders: list[tuple[str, str]] = []
        for entry in data or []:
            parsed = _parse_list_entry(entry)
            if parsed is None:
                continue
            flags, raw_name = parsed
            if flags & _SKIPPED_FLAGS:
                continue
            folders.append((raw_name, _decode_mailbox_name(raw_name)))
        return folders

    def _find_folder(self, bucket: str) -> str | None:
        key = canonical_key(bucket)
        for raw_name, label in self._list_folders():
            if canonical_key(label) == key:
                return raw_name
        LOGGER.debug("No folder matches bucket '%s'", bucket)
        return None

    def _list_messages(
        self, bucket: str | None, limit: int, criteria: str = "ALL"
    ) -> list[MessageEnvelope]:
        if bucket is None:
            folders = self._list_folders()
        else:
            raw_name = self._find_folder(bucket)
            if raw_name is None:
                raise ImapError(f"Folder '{bucket}' not found")
            folders = [(raw_name, _decode_mailbox_name(raw_name))]

        envelopes: list[MessageEnvelope] = []
        for raw_name, label in folders:
            envelopes.extend(self._folder_envelopes(raw_name, label, limit, criteria))
        return envelopes

    def _search_messages(self, query: str, limit: int) -> list[MessageEnvelope]:
        needle = query.strip().lower()
        if not needle or limit <= 0:
            return []
        # imaplib sends str arguments as ASCII; other queries are filtered here.
        server_side = needle.isascii()
        if server_side:
            criteria, scan = f"TEXT {_quote(query.strip())}", limit
        else:
            criteria, scan = "ALL", _SEARCH_SCAN_LIMIT

        found: list[MessageEnvelope] = []
        for raw_name, label in self._list_folders():
            matches = [
                envelope
                for envelope in self._folder_envelopes(raw_name, label, scan, criteria)
                if server_side or _mentions(envelope, needle)
            ]
            found.extend(matches[-limit:])
        found.sort(key=_received_sort_key, reverse=True)
        return found[:limit]

    def _folder_envelopes(
        self, raw_name: str, label: str, limit: int, criteria: str = "ALL"
    ) -> Iterable[MessageEnvelope]:
        connection = self._require_connection()
        status, _ = connection.select(_quote(raw_name), readonly=True)
        if status != "OK":
            LOGGER.warning("Unable to select folder '%s'", label)
            return
        for uid in self._latest_uids(connection, criteria, limit):
            status, fetch_data = connection.uid("FETCH", uid, "(BODY.PEEK[])")
            payload = _extract_payload(fetch_data) if status == "OK" else None
            if payload is None:
                LOGGER.warning("No payload returned for UID %s in '%s'", uid, label)
                continue
            yield self._envelope(uid, payload, raw_name, label)

    def _envelope(
        self, uid: str, payload: bytes, raw_name: str, label: str
    ) -> MessageEnvelope:
        message = self._parser.parsebytes(payload)
        display_name, address = parseaddr(str(message.get("From", "")))
        return MessageEnvelope(
            message_id=uid,
            sender=address,
            sender_display_name=display_name,
            subject=str(message.get("Subject", "")),
            preview_text=_preview(message),
            current_bucket=label,
            current_bucket_handle=raw_name,
            received_at=_received_at(message),
        )

    def _move(self, uid: str, destination: str, source: str) -> None:
        connection = self._require_connection()
        status, _ = connection.select(_quote(source))
        if status != "OK":
            raise ImapError(f"Unable to select folder '{source}'")
        LOGGER.debug("Moving UID %s from '%s' to '%s'", uid, source, destination)
        # MOVE is an IMAP extension supported by the major providers.
        status, _ = connection.uid("MOVE", uid, _quote(destination))
        if status != "OK":
            raise ImapError(f"Failed to move message UID {uid} to '{destination}'")

    def _search_contacts(self, name: str) -> list[Contact]:
        connection = self._require_connection()
        inbox = _encode_mailbox_name(self._settings.inbox)
        status, _ = connection.select(_quote(inbox), readonly=True)
        if status != "OK":
            raise ImapError(f"Unable to select folder '{self._settings.inbox}'")
        # imaplib sends str arguments as ASCII; other names are filtered below.
        criteria = f"FROM {_quote(name)}" if name.isascii() else "ALL"
        counts: dict[str, tuple[Contact, int]] = {}
        needle = name.lower()
        for uid in self._latest_uids(connection, criteria, _CONTACT_SCAN_LIMIT):
            status, fetch_data = connection.uid(
                "FETCH", uid, "(BODY.PEEK[HEADER.FIELDS (FROM)])"
            )
            payload = _extract_payload(fetch_data) if status == "OK" else None
            if payload is None:
                continue
            header = self._parser.parsebytes(payload)
            for display_name, address in getaddresses(header.get_all("From", [])):
                if not address:
                    continue
                if needle not in display_name.lower() and needle not in address.lower():
                    continue
                key = address.lower()
                contact, seen = counts.get(key, (Contact(display_name or address, address), 0))
                counts[key] = (contact, seen + 1)
        ranked = sorted(counts.values(), key=lambda item: item[1], reverse=True)
        return [contact for contact, _ in ranked[:_MAX_CONTACTS]]

    def _latest_uids(
        self, connection: imaplib.IMAP4, criteria: str, limit: int
    ) -> list[str]:
        if limit <= 0:
            return []
        status, data = connection.uid("SEARCH", None, criteria)  # type: ignore[arg-type]
        if status != "OK":
            raise ImapError("Failed to search for message UIDs")
        raw_ids = data[0].split() if data and data[0] else []
        return [uid.decode() for uid in raw_ids[-limit:]]

    def _require_connection(self) -> imaplib.IMAP4 | imaplib.IMAP4_SSL:
        if self._connection is not None:
            return self._connection
        username = self._settings.username
        password = self._settings.app_password
        if username is None or password is None:
            raise ImapError("IMAP credentials are not configured")
        try:
            LOGGER.debug(
                "Connecting to IMAP host %s:%s", self._settings.host, self._settings.port
            )
            connection: imaplib.IMAP4 | imaplib.IMAP4_SSL
            if self._settings.use_ssl:
                connection = imaplib.IMAP4_SSL(self._settings.host, self._settings.port)
            else:
                connection = imaplib.IMAP4(self._settings.host, self._settings.port)
            connection.login(username, password)
        except (imaplib.IMAP4.error, OSError) as exc:  # pragma: no cover - network dependent
            raise ImapError("Failed to connect to IMAP server") from exc
        self._connection = connection
        return connection


def _parse_list_entry(entry: bytes | tuple | None) -> tuple[set[str], str] | None:
    if not isinstance(entry, bytes):
        return None
    match = _LIST_PATTERN.match(entry.decode("utf-8", errors="replace"))
    if match is None:
        return None
    flags = {flag.lower() for flag in match.group("flags").split()}
    name = match.group("name").strip()
    if name.startswith('"') and name.endswith('"'):
        name = name[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    return flags, name


def _extract_payload(fetch_data: list[tuple[bytes, bytes] | bytes] | None) -> bytes | None:
    """Extract the literal payload from ``imaplib`` response chunks."""
    for entry in fetch_data or []:
        if isinstance(entry, tuple) and len(entry) == 2:
            return entry[1]
    return None


def _preview(message: EmailMessage) -> str:
    text: str | None = None
    for part in message.walk():
        if part.is_multipart() or part.get_content_disposition() == "attachment":
            continue
        content_type = part.get_content_type()
        if content_type not in ("text/plain", "text/html"):
            continue
        try:
            content = part.get_content()
        except LookupError:
            continue
        if not isinstance(content, str):
            continue
        if content_type == "text/html":
            content = re.sub(r"<[^>]+>", " ", content)
        text = content
        if content_type == "text/plain":
            break
    if not text:
        return ""
    return " ".join(text.split())[:_PREVIEW_LENGTH]


def _received_at(message: EmailMessage) -> datetime | None:
    raw = message.get("Date")
    if not raw:
        return None
    try:
        received = parsedate_to_datetime(str(raw))
    except (TypeError, ValueError):
        return None
    return ensure_utc(received)


def _received_sort_key(envelope: MessageEnvelope) -> datetime:
    return envelope.received_at or datetime.min.replace(tzinfo=UTC)


def _mentions(envelope: MessageEnvelope, needle: str) -> bool:
    return any(
        needle in (value or "").lower()
        for value in (
            envelope.sender,
            envelope.sender_display_name,
            envelope.subject,
            envelope.preview_text,
        )
    )


def _quote(name: str) -> str:
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _encode_mailbox_name(name: str) -> str:
    """Encode a folder name to IMAP modified UTF-7 (RFC 3501 section 5.1.3)."""
    encoded: list[str] = []
    pending: list[str] = []

    def flush() -> None:
        if pending:
            raw = "".join(pending).encode("utf-16-be")
            chunk = base64.b64encode(raw).decode("ascii").rstrip("=").replace("/", ",")
            encoded.append(f"&{chunk}-")
            pending.clear()

    for char in name:
        if 0x20 <= ord(char) <= 0x7E:
            flush()
            encoded.append("&-" if char == "&" else char)
        else:
            pending.append(char)
    flush()
    return "".join(encoded)


def _decode_mailbox_name(name: str) -> str:
    """Decode an IMAP modified UTF-7 folder name."""

    def decode_chunk(match: re.Match[str]) -> str:
        chunk = match.group(1)
        if not chunk:
            return "&"
        padded = chunk.replace(",", "/") + "=" * (-len(chunk) % 4)
        return base64.b64decode(padded).decode("utf-16-be")

    return re.sub(r"&([^-]*)-", decode_chunk, name)


__all__ = ["ImapError", "ImapMailbox"]
