"""Chat-driven mailbox assistant: rule-first filing and confirmed drafting."""

__version__ = "0.1.0"
