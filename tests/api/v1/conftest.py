"""Pytest fixtures for API testing."""

import pytest
from httpx import AsyncClient, ASGITransport

from chatrelay.api.v1 import conversations, websocket

from helpers import build_test_app


@pytest.fixture(scope="function")
async def client(service):
    """Async HTTP client over a fresh in-memory service."""
    conversations.chat_service = service
    websocket.chat_service = service

    # Test app without lifespan; routers get the service injected above
    transport = ASGITransport(app=build_test_app())
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    conversations.chat_service = None
    websocket.chat_service = None


@pytest.fixture
async def conversation_id(client, intake_form) -> str:
    """ID of a conversation opened through the intake endpoint."""
    response = await client.post("/api/v1/conversations", json=intake_form)
    return response.json()["id"]
