"""Web entry point for the concierge; serve with ``uvicorn --factory``."""

from .app import create_app

__all__ = ["create_app"]
