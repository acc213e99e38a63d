"""Conversation session: one client's live view and its write path."""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Mapping, Optional, Set, Union

from pydantic import ValidationError as PydanticValidationError

from .ai_relay import AIRelay
from .change_feed import ChangeFeed, Subscription, CONVERSATIONS_TOPIC, messages_topic
from .directory import ConversationDirectory
from .message_store import MessageStore
from ..config import Settings
from ..db.database_models.conversation import ConversationDO
from ..db.database_models.message import MessageDO, SenderType
from ..exceptions import SessionStateError, UpstreamError, ValidationError
from ..models.conversation import IntakeRequest, to_conversation_response
from ..models.event import ChangeEvent
from ..models.message import to_message_response
from ..models.session import SessionView
from ..utils.logger import get_app_logger


ViewCallback = Callable[[SessionView], Awaitable[None]]


class SessionState(str, Enum):
    ANONYMOUS = "anonymous"
    ACTIVE = "active"


@dataclass
class SendResult:
    """Outcome of one send: the stored user message and the reply or a notice."""

    user_message: MessageDO
    reply: Optional[MessageDO] = None
    notice: Optional[str] = None


class RelayScheduler:
    """
    Per-conversation mutual exclusion for send-and-reply cycles.

    Shared by every session so two clients on the same conversation are
    serialized too. Locks are created on demand and dropped when idle.
    asyncio.Lock wakes waiters in arrival order, which keeps sends FIFO.

    Also keeps the send tasks of every session so shutdown can let them
    finish before the database closes.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}
        self._tasks: Set[asyncio.Task] = set()

    @asynccontextmanager
    async def slot(self, conversation_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        self._users[conversation_id] = self._users.get(conversation_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[conversation_id] -= 1
            if self._users[conversation_id] == 0:
                del self._users[conversation_id]
                del self._locks[conversation_id]

    def in_flight(self, conversation_id: str) -> int:
        """Sends holding or waiting for the conversation's slot."""
        return self._users.get(conversation_id, 0)

    def track(self, task: asyncio.Task) -> None:
        """Remember a send task until it completes."""
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self, timeout: Optional[float] = None) -> int:
        """
        Wait for tracked sends to finish.

        Sends still running when timeout elapses are cancelled.

        Returns:
            Number of sends that were cancelled
        """
        if not self._tasks:
            return 0
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        return len(pending)


class ConversationSession:
    """
    Orchestrates one client: intake, sends, and change-feed driven refreshes.

    State goes ANONYMOUS -> ACTIVE once and never back. While ACTIVE, any
    send still waiting on the relay puts the session in awaiting_reply;
    further sends queue behind it in submission order.
    """

    def __init__(
        self,
        store: MessageStore,
        directory: ConversationDirectory,
        relay: AIRelay,
        feed: ChangeFeed,
        scheduler: RelayScheduler,
        settings: Settings,
        on_change: Optional[ViewCallback] = None
    ):
        self.store = store
        self.directory = directory
        self.relay = relay
        self.feed = feed
        self.scheduler = scheduler
        self.settings = settings
        self.on_change = on_change
        self.logger = get_app_logger("session")

        self.state = SessionState.ANONYMOUS
        self.conversation_id: Optional[str] = None
        self._conversation: Optional[ConversationDO] = None
        self._messages: List[MessageDO] = []
        self._notices: List[str] = []
        self._subscriptions: List[Subscription] = []
        self._listeners: List[asyncio.Task] = []
        self._pending: Set[asyncio.Task] = set()
        self._closed = False

    # === State ===

    @property
    def awaiting_reply(self) -> bool:
        return any(not task.done() for task in self._pending)

    def _require_active(self) -> str:
        if self.state is not SessionState.ACTIVE:
            raise SessionStateError("Submit the intake form before sending messages", self.state.value)
        return self.conversation_id

    def view(self) -> SessionView:
        """Snapshot of what this client renders."""
        return SessionView(
            state=self.state.value,
            awaiting_reply=self.awaiting_reply,
            conversation=to_conversation_response(self._conversation) if self._conversation else None,
            messages=[to_message_response(m) for m in self._messages],
            notices=list(self._notices)
        )

    # === Transitions ===

    async def submit_intake(self, form: Union[IntakeRequest, Mapping]) -> ConversationDO:
        """
        Open a conversation from the intake form and post the greeting.

        Raises:
            ValidationError: with per-field messages; the session stays anonymous
            SessionStateError: the session is already active
        """
        if self.state is not SessionState.ANONYMOUS:
            raise SessionStateError("Intake was already submitted", self.state.value)

        if isinstance(form, IntakeRequest):
            intake = form
        else:
            try:
                intake = IntakeRequest.model_validate(dict(form))
            except PydanticValidationError as e:
                fields = {}
                for error in e.errors():
                    field = str(error["loc"][0]) if error.get("loc") else "form"
                    fields.setdefault(field, error["msg"])
                raise ValidationError("Please fill in all required fields", fields) from e

        conversation = self.directory.create(intake.name, intake.email, intake.phone, intake.page_title)
        greeting = self.settings.greeting_template.format(name=intake.name)
        await self.store.append(conversation.id, greeting, SenderType.COMPANY.value)

        self.logger.info(f"Intake accepted, conversation {conversation.id} opened for {intake.email}")
        await self._activate(conversation.id)
        return self._conversation

    async def resume(self, conversation_id: str) -> SessionView:
        """
        Attach to an existing conversation, e.g. after a reconnect.

        Subscribes first and then re-reads, so nothing written in between
        is missed.

        Raises:
            NotFoundError: the conversation does not exist
            SessionStateError: the session is already active
        """
        if self.state is not SessionState.ANONYMOUS:
            raise SessionStateError("Session is already attached to a conversation", self.state.value)
        self.directory.get(conversation_id)
        await self._activate(conversation_id)
        return self.view()

    async def _activate(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        self.state = SessionState.ACTIVE
        # Both topics: the conversations topic carries last_message/status
        # changes that the messages topic does not
        for topic in (messages_topic(conversation_id), CONVERSATIONS_TOPIC):
            subscription = self.feed.subscribe(topic)
            self._subscriptions.append(subscription)
            self._listeners.append(asyncio.create_task(self._listen(subscription)))
        await self.refresh()

    # === Sending ===

    async def send(self, content: str) -> SendResult:
        """
        Store a user message and the AI reply to it.

        The work continues even if the caller is cancelled, so a client
        that disconnects still gets its reply persisted.

        Raises:
            SessionStateError: intake not yet submitted
            ValidationError: empty content
            NotFoundError, StorageError: from the message store
        """
        conversation_id = self._require_active()
        text = (content or "").strip()
        if not text:
            raise ValidationError("Message content cannot be empty", {"content": "Message content cannot be empty"})

        task = asyncio.create_task(self._process(conversation_id, text))
        self._pending.add(task)
        task.add_done_callback(self._on_send_done)
        self.scheduler.track(task)
        return await asyncio.shield(task)

    def _on_send_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.logger.error(f"Send in {self.conversation_id} failed: {task.exception()}")

    async def _process(self, conversation_id: str, text: str) -> SendResult:
        async with self.scheduler.slot(conversation_id):
            user_message = await self.store.append(conversation_id, text, SenderType.USER.value)
            history = self.store.history(conversation_id)
            try:
                reply = await self._reply_with_retry(conversation_id, history)
            except UpstreamError:
                notice = self.settings.fallback_notice
                self._notices.append(notice)
                await self._notify()
                return SendResult(user_message=user_message, notice=notice)
            return SendResult(user_message=user_message, reply=reply)

    async def _reply_with_retry(self, conversation_id: str, history: List[Dict[str, str]]) -> MessageDO:
        attempts = max(0, self.settings.relay_max_retries) + 1
        for attempt in range(1, attempts + 1):
            try:
                return await self.relay.reply(conversation_id, history)
            except UpstreamError as e:
                if attempt == attempts:
                    raise
                self.logger.info(f"Relay attempt {attempt}/{attempts} for {conversation_id} failed ({e.error_code}), retrying")
                await asyncio.sleep(self.settings.relay_retry_backoff * attempt)

    async def wait_idle(self) -> None:
        """Wait until no send is in flight."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # === Change feed ===

    async def refresh(self) -> None:
        """Re-read the conversation and its messages and replace the view."""
        conversation_id = self._require_active()
        self._conversation = self.directory.get(conversation_id)
        self._messages = self.store.list_by_conversation(conversation_id)
        await self._notify()

    async def _listen(self, subscription: Subscription) -> None:
        try:
            async for event in subscription:
                if not self._concerns_me(event):
                    continue
                try:
                    await self.refresh()
                except Exception:
                    self.logger.exception(f"Refresh of {self.conversation_id} failed after {event.kind.value} event")
        except asyncio.CancelledError:
            self.logger.debug(f"Listener on {subscription.topic} cancelled")

    def _concerns_me(self, event: ChangeEvent) -> bool:
        if event.topic == CONVERSATIONS_TOPIC:
            return event.entity_id == self.conversation_id
        return True

    async def _notify(self) -> None:
        if self.on_change is None:
            return
        try:
            await self.on_change(self.view())
        except Exception:
            self.logger.exception(f"View callback failed for {self.conversation_id}")

    # === Lifecycle ===

    async def close(self) -> None:
        """Stop listening. In-flight sends are left to finish. Idempotent."""
        if self._closed:
            return
        self._closed = True
        for subscription in self._subscriptions:
            subscription.close()
        for task in self._listeners:
            task.cancel()
        await asyncio.gather(*self._listeners, return_exceptions=True)
        self._subscriptions.clear()
        self._listeners.clear()
        self.on_change = None
        self.logger.debug(f"Session for {self.conversation_id} closed")
