"""Pydantic models for API request/response."""

from .conversation import (
    IntakeRequest,
    UpdateStatusRequest,
    ConversationResponse,
    ConversationListResponse,
    to_conversation_response,
)
from .message import (
    SendMessageRequest,
    MessageResponse,
    ConversationMessagesResponse,
    SendMessageResponse,
    to_message_response,
)
from .event import ChangeEvent, EventKind
from .session import SessionView

__all__ = [
    "IntakeRequest",
    "UpdateStatusRequest",
    "ConversationResponse",
    "ConversationListResponse",
    "SendMessageRequest",
    "MessageResponse",
    "ConversationMessagesResponse",
    "SendMessageResponse",
    "ChangeEvent",
    "EventKind",
    "SessionView",
    "to_conversation_response",
    "to_message_response",
]
