"""Conversation directory: one summary record per conversation."""

import uuid
from dataclasses import asdict
from datetime import datetime
from typing import List, Optional

from .change_feed import ChangeFeed, CONVERSATIONS_TOPIC
from ..db.connection import DatabaseConnection
from ..db.database_models.conversation import ConversationDO, ConversationStatus
from ..db.repositories.conversation import ConversationRepository
from ..exceptions import NotFoundError, ValidationError
from ..models.event import ChangeEvent, EventKind
from ..utils.logger import get_app_logger


def conversation_event(conversation: ConversationDO, kind: EventKind) -> ChangeEvent:
    """Build a conversations-topic event for a conversation snapshot."""
    return ChangeEvent(
        topic=CONVERSATIONS_TOPIC,
        kind=kind,
        entity_type="conversation",
        entity_id=conversation.id,
        entity=asdict(conversation)
    )


class ConversationDirectory:
    """Creates, reads and updates conversation summaries."""

    def __init__(self, db: DatabaseConnection, feed: ChangeFeed):
        self.db = db
        self.feed = feed
        self.repo = ConversationRepository(db.conn)
        self.logger = get_app_logger("directory")

    def create(
        self,
        user_name: str,
        user_email: str,
        user_phone: str = "",
        page_title: str = ""
    ) -> ConversationDO:
        """
        Open a new conversation.

        Raises:
            ValidationError: user_name or user_email is empty
            StorageError: the insert failed
        """
        fields = {}
        if not (user_name or "").strip():
            fields["user_name"] = "Name is required"
        if not (user_email or "").strip():
            fields["user_email"] = "Email is required"
        if fields:
            raise ValidationError("Conversation details are incomplete", fields)

        conversation = ConversationDO(
            id=str(uuid.uuid4()),
            user_name=user_name.strip(),
            user_email=user_email.strip(),
            user_phone=(user_phone or "").strip(),
            page_title=(page_title or "").strip(),
            last_message=None,
            status=ConversationStatus.OPEN.value,
            created_at=datetime.utcnow()
        )
        self.repo.create(conversation)
        self.feed.publish(CONVERSATIONS_TOPIC, conversation_event(conversation, EventKind.INSERT))
        return conversation

    def get(self, conversation_id: str) -> ConversationDO:
        """
        Get one conversation.

        Raises:
            NotFoundError: no conversation with this id
        """
        conversation = self.repo.get(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation", conversation_id)
        return conversation

    def list(self) -> List[ConversationDO]:
        """All conversations, most recently created first."""
        return self.repo.list_all()

    def search(self, query: Optional[str]) -> List[ConversationDO]:
        """Conversations whose user name, email or last message contain query."""
        if not query or not query.strip():
            return self.list()
        return self.repo.search(query.strip())

    def update_last_message(self, conversation_id: str, content: str) -> None:
        """
        Point the summary at the newest message text.

        Only called by MessageStore.append, inside its transaction and after
        the message row is written. Publishing is left to the caller, which
        does it once the transaction has committed.

        Raises:
            NotFoundError: no conversation with this id
        """
        if not self.repo.exists(conversation_id):
            raise NotFoundError("Conversation", conversation_id)
        self.repo.update_last_message(conversation_id, content)

    def update_status(self, conversation_id: str, status: str) -> ConversationDO:
        """
        Change a conversation's status (company action).

        Raises:
            ValidationError: status is not open, waiting or resolved
            NotFoundError: no conversation with this id
        """
        try:
            new_status = ConversationStatus(status)
        except ValueError:
            allowed = ", ".join(s.value for s in ConversationStatus)
            raise ValidationError(f"Invalid status '{status}'", {"status": f"Must be one of: {allowed}"})

        conversation = self.get(conversation_id)
        if conversation.status == new_status.value:
            return conversation

        self.repo.update_status(conversation_id, new_status.value)
        conversation.status = new_status.value
        self.logger.info(f"Conversation {conversation_id} status -> {new_status.value}")
        self.feed.publish(CONVERSATIONS_TOPIC, conversation_event(conversation, EventKind.UPDATE))
        return conversation
