"""Message database model."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class SenderType(str, Enum):
    """Who wrote a message."""

    USER = "user"
    COMPANY = "company"


@dataclass
class MessageDO:
    """Message data object - maps to messages table."""

    id: str
    conversation_id: str
    content: str
    sender_type: str
    created_at: datetime = field(default_factory=datetime.utcnow)
    seq: Optional[int] = None

    def to_turn(self) -> dict:
        """Chat-completion turn for this message."""
        role = "user" if self.sender_type == SenderType.USER.value else "assistant"
        return {"role": role, "content": self.content}
