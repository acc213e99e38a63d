"""Services package."""

from .change_feed import ChangeFeed, Subscription, CONVERSATIONS_TOPIC, messages_topic
from .directory import ConversationDirectory
from .message_store import MessageStore
from .ai_relay import AIRelay
from .session import ConversationSession, RelayScheduler, SendResult, SessionState
from .chat_service import ChatService

__all__ = [
    "ChangeFeed",
    "Subscription",
    "CONVERSATIONS_TOPIC",
    "messages_topic",
    "ConversationDirectory",
    "MessageStore",
    "AIRelay",
    "ConversationSession",
    "RelayScheduler",
    "SendResult",
    "SessionState",
    "ChatService",
]
