"""Client messaging and typing indicators."""

from .service import MessageService, message_to_dict
from .typing import TypingIndicatorStore, get_typing_store

__all__ = [
    # Messages
    "MessageService",
    "message_to_dict",
    # Typing indicator
    "TypingIndicatorStore",
    "get_typing_store",
]
