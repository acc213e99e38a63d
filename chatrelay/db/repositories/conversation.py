"""Conversation repository for database operations."""

import duckdb
from typing import Optional, List
from .base import BaseRepository
from ..database_models.conversation import ConversationDO


_COLUMNS = "id, user_name, user_email, user_phone, page_title, last_message, status, created_at"


def _row_to_conversation(row) -> ConversationDO:
    return ConversationDO(
        id=row[0],
        user_name=row[1],
        user_email=row[2],
        user_phone=row[3] or "",
        page_title=row[4] or "",
        last_message=row[5],
        status=row[6],
        created_at=row[7]
    )


class ConversationRepository(BaseRepository):
    """Repository for Conversation CRUD operations."""

    def create(self, conversation: ConversationDO) -> None:
        """
        Create a new conversation record.

        Args:
            conversation: ConversationDO instance

        Raises:
            StorageError: if the insert fails
        """
        try:
            self.conn.execute(f"""
                INSERT INTO conversations ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, [
                conversation.id,
                conversation.user_name,
                conversation.user_email,
                conversation.user_phone,
                conversation.page_title,
                conversation.last_message,
                conversation.status,
                conversation.created_at
            ])
        except duckdb.Error as e:
            raise self._fail(f"create conversation {conversation.id}", e) from e
        self.logger.info(f"Created conversation record: {conversation.id}")

    def get(self, conversation_id: str) -> Optional[ConversationDO]:
        """
        Get conversation by ID.

        Args:
            conversation_id: Conversation ID

        Returns:
            ConversationDO instance or None
        """
        try:
            result = self.conn.execute(f"""
                SELECT {_COLUMNS}
                FROM conversations
                WHERE id = ?
            """, [conversation_id]).fetchone()
        except duckdb.Error as e:
            raise self._fail(f"get conversation {conversation_id}", e) from e

        return _row_to_conversation(result) if result else None

    def exists(self, conversation_id: str) -> bool:
        """Check whether a conversation row exists."""
        try:
            result = self.conn.execute(
                "SELECT 1 FROM conversations WHERE id = ? LIMIT 1", [conversation_id]
            ).fetchone()
        except duckdb.Error as e:
            raise self._fail(f"check conversation {conversation_id}", e) from e
        return result is not None

    def list_all(self) -> List[ConversationDO]:
        """
        List all conversations.

        Returns:
            List of ConversationDO instances, newest first
        """
        try:
            results = self.conn.execute(f"""
                SELECT {_COLUMNS}
                FROM conversations
                ORDER BY created_at DESC, id
            """).fetchall()
        except duckdb.Error as e:
            raise self._fail("list conversations", e) from e

        return [_row_to_conversation(row) for row in results]

    def search(self, query: str) -> List[ConversationDO]:
        """
        Case-insensitive search over user name, email and last message.

        Args:
            query: Substring to look for

        Returns:
            Matching ConversationDO instances, newest first
        """
        pattern = f"%{query}%"
        try:
            results = self.conn.execute(f"""
                SELECT {_COLUMNS}
                FROM conversations
                WHERE user_name ILIKE ?
                   OR user_email ILIKE ?
                   OR COALESCE(last_message, '') ILIKE ?
                ORDER BY created_at DESC, id
            """, [pattern, pattern, pattern]).fetchall()
        except duckdb.Error as e:
            raise self._fail("search conversations", e) from e

        return [_row_to_conversation(row) for row in results]

    def update_last_message(self, conversation_id: str, content: str) -> None:
        """Set the denormalized last message text."""
        try:
            self.conn.execute(
                "UPDATE conversations SET last_message = ? WHERE id = ?",
                [content, conversation_id]
            )
        except duckdb.Error as e:
            raise self._fail(f"update last message of {conversation_id}", e) from e

    def update_status(self, conversation_id: str, status: str) -> None:
        """Set the conversation status."""
        try:
            self.conn.execute(
                "UPDATE conversations SET status = ? WHERE id = ?",
                [status, conversation_id]
            )
        except duckdb.Error as e:
            raise self._fail(f"update status of {conversation_id}", e) from e
