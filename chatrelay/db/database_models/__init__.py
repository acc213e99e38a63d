"""Database models (Data Objects) - map to database tables."""

from .conversation import ConversationDO, ConversationStatus
from .message import MessageDO, SenderType

__all__ = ["ConversationDO", "ConversationStatus", "MessageDO", "SenderType"]
