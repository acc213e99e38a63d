"""Conversation API models."""

import re
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..db.database_models.conversation import ConversationStatus


# Loose shape check, the address is never dialled or mailed by the core
EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


class IntakeRequest(BaseModel):
    """Request model for the intake form that opens a conversation."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(description="Visitor name", min_length=1, max_length=200)
    email: str = Field(description="Visitor email", min_length=1, max_length=320)
    phone: str = Field(description="Visitor phone", min_length=1, max_length=64)
    page_title: str = Field(default="", description="Title of the page hosting the widget", max_length=500)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        """Validate email shape."""
        if not EMAIL_PATTERN.match(v):
            raise ValueError(f"Invalid email '{v}'")
        return v


class UpdateStatusRequest(BaseModel):
    """Request model for changing a conversation's status."""

    status: ConversationStatus = Field(description="New status: open, waiting or resolved")


class ConversationResponse(BaseModel):
    """Response model for conversation information."""

    id: str = Field(description="Conversation ID")
    user_name: str = Field(description="Visitor name")
    user_email: str = Field(description="Visitor email")
    user_phone: str = Field(default="", description="Visitor phone")
    page_title: str = Field(default="", description="Page the conversation started on")
    last_message: Optional[str] = Field(None, description="Text of the most recent message")
    status: str = Field(description="open, waiting or resolved")
    created_at: datetime = Field(description="Creation timestamp")


class ConversationListResponse(BaseModel):
    """Response model for listing conversations."""

    conversations: List[ConversationResponse] = Field(description="List of conversations")
    total: int = Field(description="Total number of conversations")


def to_conversation_response(conversation) -> ConversationResponse:
    """Convert ConversationDO to ConversationResponse."""
    return ConversationResponse(
        id=conversation.id,
        user_name=conversation.user_name,
        user_email=conversation.user_email,
        user_phone=conversation.user_phone,
        page_title=conversation.page_title,
        last_message=conversation.last_message,
        status=conversation.status,
        created_at=conversation.created_at
    )
