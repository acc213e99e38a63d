"""Chat service: owns the shared components and hands out sessions."""

from typing import Optional

import httpx

from .ai_relay import AIRelay
from .change_feed import ChangeFeed
from .directory import ConversationDirectory
from .message_store import MessageStore
from .session import ConversationSession, RelayScheduler, ViewCallback
from ..config import Settings
from ..db.connection import DatabaseConnection
from ..utils.logger import get_app_logger


class ChatService:
    """Wires store, directory, feed and relay around one database connection."""

    def __init__(
        self,
        settings: Settings,
        db: Optional[DatabaseConnection] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        """
        Args:
            settings: Application settings
            db: Optional open connection; one is opened at settings.database_path otherwise
            http_client: Optional client for the AI provider
        """
        self.settings = settings
        self.db = db or DatabaseConnection(settings.database_path)
        self.feed = ChangeFeed()
        self.directory = ConversationDirectory(self.db, self.feed)
        self.store = MessageStore(self.db, self.directory, self.feed)
        self.relay = AIRelay(self.store, settings, client=http_client)
        self.scheduler = RelayScheduler()
        self.logger = get_app_logger()

    def new_session(self, on_change: Optional[ViewCallback] = None) -> ConversationSession:
        """Create an anonymous session; the caller submits intake next."""
        return ConversationSession(
            store=self.store,
            directory=self.directory,
            relay=self.relay,
            feed=self.feed,
            scheduler=self.scheduler,
            settings=self.settings,
            on_change=on_change
        )

    async def open_session(self, conversation_id: str, on_change: Optional[ViewCallback] = None) -> ConversationSession:
        """
        Create a session attached to an existing conversation.

        Raises:
            NotFoundError: the conversation does not exist
        """
        session = self.new_session(on_change)
        await session.resume(conversation_id)
        return session

    async def shutdown(self) -> None:
        """
        Let in-flight sends store their replies, then close subscriptions,
        the provider client and the database.

        Sends still waiting on the relay after relay_timeout are cancelled.
        """
        abandoned = await self.scheduler.drain(timeout=self.settings.relay_timeout)
        if abandoned:
            self.logger.warning(f"Cancelled {abandoned} send(s) still waiting on the relay at shutdown")
        self.feed.close()
        await self.relay.close()
        self.db.close()
        self.logger.info("Chat service shut down")
