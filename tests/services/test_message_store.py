"""Tests for MessageStore."""

from datetime import datetime

import pytest

from chatrelay.exceptions import NotFoundError, StorageError, ValidationError
from chatrelay.models.event import EventKind
from chatrelay.services import message_store as message_store_module
from chatrelay.services.change_feed import CONVERSATIONS_TOPIC, messages_topic


@pytest.fixture
def conversation(service):
    return service.directory.create("Ana", "a@x.com", "555", "Home")


def _frozen_clock(*instants):
    """datetime subclass whose utcnow() walks through the given instants."""
    remaining = list(instants)

    class FrozenDatetime(datetime):
        @classmethod
        def utcnow(cls):
            return remaining.pop(0) if len(remaining) > 1 else remaining[0]

    return FrozenDatetime


class TestAppend:
    """SUT: MessageStore.append"""

    async def test_returns_stored_message(self, service, conversation):
        message = await service.store.append(conversation.id, "Hello", "user")
        assert message.id
        assert message.seq is not None
        assert message.sender_type == "user"
        assert message.conversation_id == conversation.id
        assert service.store.list_by_conversation(conversation.id) == [message]

    async def test_trims_content(self, service, conversation):
        message = await service.store.append(conversation.id, "  Hello \n", "user")
        assert message.content == "Hello"

    @pytest.mark.parametrize("content", ["", "   ", "\n\t", None])
    async def test_rejects_empty(self, service, conversation, content):
        with pytest.raises(ValidationError):
            await service.store.append(conversation.id, content, "user")
        assert service.store.list_by_conversation(conversation.id) == []

    async def test_rejects_unknown_sender(self, service, conversation):
        with pytest.raises(ValidationError) as exc_info:
            await service.store.append(conversation.id, "hi", "robot")
        assert "sender_type" in exc_info.value.fields

    async def test_unknown_conversation(self, service):
        with pytest.raises(NotFoundError):
            await service.store.append("missing", "hi", "user")

    async def test_directory_consistency(self, service, conversation):
        """last_message always equals the newest stored message."""
        for i, sender in enumerate(["company", "user", "company", "user"]):
            await service.store.append(conversation.id, f"message {i}", sender)
            messages = service.store.list_by_conversation(conversation.id)
            assert service.directory.get(conversation.id).last_message == messages[-1].content

    async def test_publishes_after_commit(self, service, conversation):
        message_events = service.feed.subscribe(messages_topic(conversation.id))
        directory_events = service.feed.subscribe(CONVERSATIONS_TOPIC)

        message = await service.store.append(conversation.id, "Hello", "user")

        event = await message_events.get(timeout=1)
        assert event.kind is EventKind.INSERT
        assert event.entity_id == message.id
        # By the time the event arrives the message is readable
        assert service.store.list_by_conversation(conversation.id)[-1].id == message.id

        summary = await directory_events.get(timeout=1)
        assert summary.kind is EventKind.UPDATE
        assert summary.entity["last_message"] == "Hello"


class TestOrdering:
    """Insertion order is preserved even when timestamps tie or go backwards."""

    async def test_ties_keep_insertion_order(self, service, conversation, monkeypatch):
        instant = datetime(2025, 1, 1, 12, 0, 0)
        monkeypatch.setattr(message_store_module, "datetime", _frozen_clock(instant))

        for i in range(5):
            await service.store.append(conversation.id, f"m{i}", "user")

        messages = service.store.list_by_conversation(conversation.id)
        assert [m.content for m in messages] == [f"m{i}" for i in range(5)]
        assert {m.created_at for m in messages} == {instant}

    async def test_clock_skew_keeps_timestamps_monotonic(self, service, conversation, monkeypatch):
        later = datetime(2025, 1, 1, 12, 0, 5)
        earlier = datetime(2025, 1, 1, 12, 0, 0)
        monkeypatch.setattr(message_store_module, "datetime", _frozen_clock(later, earlier))

        first = await service.store.append(conversation.id, "first", "user")
        second = await service.store.append(conversation.id, "second", "company")

        assert second.created_at >= first.created_at
        assert [m.content for m in service.store.list_by_conversation(conversation.id)] == ["first", "second"]


class TestAtomicity:
    """A failed append leaves no message, no summary change and no event."""

    async def test_directory_update_failure_rolls_back(self, service, conversation, monkeypatch):
        await service.store.append(conversation.id, "kept", "user")
        message_events = service.feed.subscribe(messages_topic(conversation.id))
        directory_events = service.feed.subscribe(CONVERSATIONS_TOPIC)

        def broken(conversation_id, content):
            raise StorageError("simulated fault")

        monkeypatch.setattr(service.directory.repo, "update_last_message", broken)

        with pytest.raises(StorageError):
            await service.store.append(conversation.id, "lost", "user")

        assert [m.content for m in service.store.list_by_conversation(conversation.id)] == ["kept"]
        assert service.directory.get(conversation.id).last_message == "kept"
        assert message_events.pending() == 0
        assert directory_events.pending() == 0

    async def test_unexpected_error_becomes_storage_error(self, service, conversation, monkeypatch):
        def broken(message):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(service.store.repo, "add", broken)

        with pytest.raises(StorageError) as exc_info:
            await service.store.append(conversation.id, "lost", "user")
        assert "disk on fire" in exc_info.value.details["cause"]
        assert service.store.list_by_conversation(conversation.id) == []
        assert service.directory.get(conversation.id).last_message is None


class TestRead:
    """SUT: MessageStore.list_by_conversation / history"""

    def test_empty(self, service, conversation):
        assert service.store.list_by_conversation(conversation.id) == []

    def test_unknown_conversation(self, service):
        with pytest.raises(NotFoundError):
            service.store.list_by_conversation("missing")

    async def test_history_roles(self, service, conversation):
        await service.store.append(conversation.id, "Hi, how can we help?", "company")
        await service.store.append(conversation.id, "Refund please", "user")
        assert service.store.history(conversation.id) == [
            {"role": "assistant", "content": "Hi, how can we help?"},
            {"role": "user", "content": "Refund please"},
        ]
