"""Live session view model."""

from typing import List, Optional
from pydantic import BaseModel, Field

from .conversation import ConversationResponse
from .message import MessageResponse


class SessionView(BaseModel):
    """What one client currently renders for its conversation."""

    state: str = Field(description="anonymous or active")
    awaiting_reply: bool = Field(default=False, description="A send is waiting on the AI relay")
    conversation: Optional[ConversationResponse] = Field(None, description="Conversation summary")
    messages: List[MessageResponse] = Field(default_factory=list, description="Stored messages")
    notices: List[str] = Field(default_factory=list, description="Transient notices, never persisted")
