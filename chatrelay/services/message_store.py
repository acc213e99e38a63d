"""Message store: durable, ordered, append-only log per conversation."""

import uuid
from dataclasses import asdict
from datetime import datetime
from typing import Dict, List

from .change_feed import ChangeFeed, CONVERSATIONS_TOPIC, messages_topic
from .directory import ConversationDirectory, conversation_event
from ..db.connection import DatabaseConnection
from ..db.database_models.message import MessageDO, SenderType
from ..db.repositories.message import MessageRepository
from ..exceptions import NotFoundError, StorageError, ValidationError
from ..models.event import ChangeEvent, EventKind
from ..utils.logger import get_app_logger


class MessageStore:
    """
    Appends and reads messages.

    An append writes the message row and the directory's last_message in
    one transaction, then publishes on both topics. Nothing is published
    when the transaction does not commit.
    """

    def __init__(self, db: DatabaseConnection, directory: ConversationDirectory, feed: ChangeFeed):
        self.db = db
        self.directory = directory
        self.feed = feed
        self.repo = MessageRepository(db.conn)
        self.logger = get_app_logger("store")

    async def append(self, conversation_id: str, content: str, sender_type: str) -> MessageDO:
        """
        Persist a new message.

        Args:
            conversation_id: Owning conversation
            content: Message text, must be non-empty after trimming
            sender_type: "user" or "company"

        Returns:
            The stored MessageDO

        Raises:
            ValidationError: empty content or unknown sender type
            NotFoundError: the conversation does not exist
            StorageError: the write failed; nothing was stored
        """
        text = (content or "").strip()
        if not text:
            raise ValidationError("Message content cannot be empty", {"content": "Message content cannot be empty"})
        try:
            sender = SenderType(sender_type).value
        except ValueError:
            raise ValidationError(f"Invalid sender type '{sender_type}'", {"sender_type": "Must be user or company"})

        # No await inside this block: the transaction is never interleaved
        # with another coroutine's writes on the shared connection.
        try:
            with self.db.transaction():
                conversation = self.directory.get(conversation_id)
                now = datetime.utcnow()
                latest = self.repo.latest_created_at(conversation_id)
                message = MessageDO(
                    id=str(uuid.uuid4()),
                    conversation_id=conversation_id,
                    content=text,
                    sender_type=sender,
                    created_at=latest if latest is not None and latest > now else now
                )
                self.repo.add(message)
                self.directory.update_last_message(conversation_id, text)
        except (NotFoundError, StorageError):
            raise
        except Exception as e:
            self.logger.error(f"Append to {conversation_id} aborted: {e}")
            raise StorageError(f"Failed to append message to {conversation_id}", {"cause": str(e)}) from e

        conversation.last_message = text
        self.logger.info(f"Stored {sender} message {message.id} in conversation {conversation_id}")

        self.feed.publish(messages_topic(conversation_id), ChangeEvent(
            topic=messages_topic(conversation_id),
            kind=EventKind.INSERT,
            entity_type="message",
            entity_id=message.id,
            entity=asdict(message)
        ))
        self.feed.publish(CONVERSATIONS_TOPIC, conversation_event(conversation, EventKind.UPDATE))
        return message

    def list_by_conversation(self, conversation_id: str) -> List[MessageDO]:
        """
        All messages of a conversation in insertion order.

        Raises:
            NotFoundError: the conversation does not exist
        """
        self.directory.get(conversation_id)
        return self.repo.get_by_conversation(conversation_id)

    def history(self, conversation_id: str) -> List[Dict[str, str]]:
        """Messages of a conversation as chat-completion turns."""
        return [message.to_turn() for message in self.list_by_conversation(conversation_id)]
