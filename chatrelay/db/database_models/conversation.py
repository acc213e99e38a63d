"""Conversation database model."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class ConversationStatus(str, Enum):
    """Company-side handling state of a conversation."""

    OPEN = "open"
    WAITING = "waiting"
    RESOLVED = "resolved"


@dataclass
class ConversationDO:
    """Conversation data object - maps to conversations table."""

    id: str
    user_name: str
    user_email: str
    user_phone: str = ""
    page_title: str = ""
    last_message: Optional[str] = None
    status: str = ConversationStatus.OPEN.value
    created_at: datetime = field(default_factory=datetime.utcnow)
