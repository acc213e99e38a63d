"""Change feed event model."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict
from pydantic import BaseModel, Field


class EventKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"


class ChangeEvent(BaseModel):
    """
    Notification that an entity on a topic changed.

    The entity snapshot is advisory; receivers re-read the canonical
    record from the store or directory.
    """

    topic: str = Field(description="Topic the event was published on")
    kind: EventKind = Field(description="insert or update")
    entity_type: str = Field(description="conversation or message")
    entity_id: str = Field(description="ID of the changed entity")
    entity: Dict[str, Any] = Field(default_factory=dict, description="Snapshot at publish time")
    published_at: datetime = Field(default_factory=datetime.utcnow, description="Publish timestamp")
