"""Web application entry point for Inbox Reminders."""

from .app import create_app

__all__ = ["create_app"]
