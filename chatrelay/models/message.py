"""Message API models."""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field


class SendMessageRequest(BaseModel):
    """Request model for sending a message into a conversation."""

    content: str = Field(description="Message text", max_length=10000)


class MessageResponse(BaseModel):
    """Response model for a single stored message."""

    id: str = Field(description="Message ID")
    conversation_id: str = Field(description="Conversation ID")
    content: str = Field(description="Message text")
    sender_type: str = Field(description="user or company")
    created_at: datetime = Field(description="Store-assigned timestamp")


class ConversationMessagesResponse(BaseModel):
    """Response model for conversation messages."""

    conversation_id: str = Field(description="Conversation ID")
    messages: List[MessageResponse] = Field(description="Messages in insertion order")
    total: int = Field(description="Total number of messages")


class SendMessageResponse(BaseModel):
    """Response model for a user send and its AI reply."""

    user_message: MessageResponse = Field(description="The stored user message")
    reply: Optional[MessageResponse] = Field(None, description="The stored AI reply, if one was generated")
    notice: Optional[str] = Field(None, description="Transient notice shown instead of a reply; never stored")


def to_message_response(message) -> MessageResponse:
    """Convert MessageDO to MessageResponse."""
    return MessageResponse(
        id=message.id,
        conversation_id=message.conversation_id,
        content=message.content,
        sender_type=message.sender_type,
        created_at=message.created_at
    )
