"""Transport adapters for the mailbox, outbound mail and chat channel."""

from .channel import ChannelError, HttpChannel
from .imap_client import ImapError, ImapMailbox
from .smtp_client import SmtpError, SmtpMailer

__all__ = [
    "ChannelError",
    "HttpChannel",
    "ImapError",
    "ImapMailbox",
    "SmtpError",
    "SmtpMailer",
]
