"""Message repository for database operations."""

import duckdb
from datetime import datetime
from typing import Optional, List
from .base import BaseRepository
from ..database_models.message import MessageDO


class MessageRepository(BaseRepository):
    """Repository for append-only message storage."""

    def add(self, message: MessageDO) -> MessageDO:
        """
        Add a new message, assigning its insertion sequence.

        Args:
            message: MessageDO instance (seq is ignored)

        Returns:
            The stored MessageDO with seq populated

        Raises:
            StorageError: if the insert fails
        """
        try:
            result = self.conn.execute("""
                INSERT INTO messages (id, seq, conversation_id, content, sender_type, created_at)
                VALUES (?, nextval('messages_seq'), ?, ?, ?, ?)
                RETURNING seq
            """, [
                message.id,
                message.conversation_id,
                message.content,
                message.sender_type,
                message.created_at
            ]).fetchone()
        except duckdb.Error as e:
            raise self._fail(f"add message to {message.conversation_id}", e) from e

        message.seq = result[0]
        self.logger.debug(f"Added message {message.id} (seq {message.seq}) to conversation {message.conversation_id}")
        return message

    def get_by_conversation(self, conversation_id: str) -> List[MessageDO]:
        """
        Get messages for a conversation.

        Args:
            conversation_id: Conversation ID

        Returns:
            List of MessageDO instances in insertion order
        """
        try:
            results = self.conn.execute("""
                SELECT id, conversation_id, content, sender_type, created_at, seq
                FROM messages
                WHERE conversation_id = ?
                ORDER BY created_at ASC, seq ASC
            """, [conversation_id]).fetchall()
        except duckdb.Error as e:
            raise self._fail(f"get messages of {conversation_id}", e) from e

        return [
            MessageDO(
                id=row[0],
                conversation_id=row[1],
                content=row[2],
                sender_type=row[3],
                created_at=row[4],
                seq=row[5]
            )
            for row in results
        ]

    def latest_created_at(self, conversation_id: str) -> Optional[datetime]:
        """
        Get the newest created_at in a conversation.

        Args:
            conversation_id: Conversation ID

        Returns:
            Timestamp or None when the conversation has no messages
        """
        try:
            result = self.conn.execute("""
                SELECT MAX(created_at) FROM messages WHERE conversation_id = ?
            """, [conversation_id]).fetchone()
        except duckdb.Error as e:
            raise self._fail(f"read latest timestamp of {conversation_id}", e) from e
        return result[0] if result else None

    def count_by_conversation(self, conversation_id: str) -> int:
        """Number of messages stored for a conversation."""
        try:
            result = self.conn.execute(
                "SELECT COUNT(*) FROM messages WHERE conversation_id = ?", [conversation_id]
            ).fetchone()
        except duckdb.Error as e:
            raise self._fail(f"count messages of {conversation_id}", e) from e
        return result[0]
