"""Chat domain exports."""

from .models import Chat, Message

__all__ = ["Chat", "Message"]
