"""API routes package."""

from edubot.api.routes import chat, grades, notifications

__all__ = [
    "chat",
    "grades",
    "notifications",
]
