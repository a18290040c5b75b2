"""SMTP mailer used to send approved drafts."""

from __future__ import annotations

import asyncio
import logging
import smtplib
import threading
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import TYPE_CHECKING

from inbox_concierge.core.interfaces import CollaboratorUnavailable

if TYPE_CHECKING:
    from inbox_concierge.core import SmtpSettings

LOGGER = logging.getLogger(__name__)

_SMTP_TIMEOUT_SECONDS = 30


class SmtpError(CollaboratorUnavailable):
    """Raised when SMTP connection, authentication, or sending fails."""


class SmtpMailer:
    """Send plain-text mail through a configured SMTP server.

    A connection is opened per message; the blocking exchange runs in a
    worker thread so the event loop keeps serving other initiators.

    Example:
        >>> mailer = SmtpMailer(SmtpSettings(host="smtp.gmail.com", ...))
        >>> await mailer.send_mail("user@example.com", "Hello", "Hi there")
    """

    def __init__(self, settings: SmtpSettings) -> None:
        self._settings = settings
        self._lock = threading.Lock()

    async def send_mail(self, recipient: str, subject: str, body: str) -> None:
        """Deliver one message.

        Raises:
            SmtpError: If the server is unreachable or refuses the message
        """
        await asyncio.to_thread(self._send, recipient, subject, body)

    def _send(self, recipient: str, subject: str, body: str) -> None:
        with self._lock:
            connection = self._connect()
            try:
                self._deliver(connection, recipient, subject, body)
            finally:
                try:
                    connection.quit()
                except (smtplib.SMTPException, OSError) as exc:
                    LOGGER.warning("Error closing SMTP connection: %s", exc)

    def _connect(self) -> smtplib.SMTP:
        if not self._settings.host:
            raise SmtpError("SMTP host not configured")

        LOGGER.info(
            "Attempting SMTP connection to %s:%d",
            self._settings.host,
            self._settings.port,
        )
        connection: smtplib.SMTP
        try:
            if self._settings.use_tls:
                LOGGER.debug("Using STARTTLS for SMTP connection")
                connection = smtplib.SMTP(
                    self._settings.host, self._settings.port, timeout=_SMTP_TIMEOUT_SECONDS
                )
                connection.starttls()
            else:
                LOGGER.debug("Using SSL for SMTP connection")
                connection = smtplib.SMTP_SSL(
                    self._settings.host, self._settings.port, timeout=_SMTP_TIMEOUT_SECONDS
                )

            if self._settings.username and self._settings.password:
                LOGGER.debug("Authenticating as %s", self._settings.username)
                connection.login(self._settings.username, self._settings.password)
        except smtplib.SMTPAuthenticationError as exc:
            LOGGER.error("SMTP authentication failed: %s", exc)
            raise SmtpError(f"SMTP authentication failed: {exc}") from exc
        except smtplib.SMTPException as exc:
            LOGGER.error("SMTP error: %s", exc)
            raise SmtpError(f"SMTP error: {exc}") from exc
        except OSError as exc:
            LOGGER.error("Network error connecting to SMTP server: %s", exc)
            raise SmtpError(f"Network error: {exc}") from exc
        return connection

    def _deliver(
        self, connection: smtplib.SMTP, recipient: str, subject: str, body: str
    ) -> None:
        LOGGER.info("Sending email to %s: %s", recipient, subject)
        mime_message = self._build_mime_message(recipient, subject, body)
        try:
            refused = connection.send_message(mime_message)
        except smtplib.SMTPRecipientsRefused as exc:
            raise SmtpError(f"All recipients refused: {exc}") from exc
        except smtplib.SMTPSenderRefused as exc:
            raise SmtpError(f"Sender refused: {exc}") from exc
        except smtplib.SMTPException as exc:
            raise SmtpError(f"Failed to send email: {exc}") from exc
        except OSError as exc:
            LOGGER.error("Network error while sending to %s: %s", recipient, exc)
            raise SmtpError(f"Network error while sending: {exc}") from exc
        if refused:
            raise SmtpError(f"Some recipients were refused: {refused}")
        LOGGER.info("Email sent to %s", recipient)

    def _build_mime_message(self, recipient: str, subject: str, body: str) -> MIMEMultipart:
        mime_msg = MIMEMultipart("alternative")
        from_address = self._settings.username or ""
        if self._settings.from_name:
            from_address = f"{self._settings.from_name} <{self._settings.username}>"
        mime_msg["From"] = from_address
        mime_msg["To"] = recipient
        mime_msg["Subject"] = subject
        mime_msg.attach(MIMEText(body, "plain", "utf-8"))
        return mime_msg


__all__ = ["SmtpError", "SmtpMailer"]
