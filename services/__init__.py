"""Service modules for the care record application."""

__all__ = [
    "care_dashboard",
    "chat_sync",
]
