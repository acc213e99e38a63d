"""Shared pytest fixtures."""

import httpx
import pytest

from chatrelay.db.connection import DatabaseConnection
from chatrelay.services import ChatService

from helpers import FakeProvider, make_settings


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def db_conn(tmp_path):
    """Provide a fresh file-backed database connection."""
    db = DatabaseConnection(str(tmp_path / "test.db"))
    yield db
    db.close()


@pytest.fixture
async def http_client(provider):
    client = httpx.AsyncClient(transport=httpx.MockTransport(provider))
    yield client
    await client.aclose()


@pytest.fixture
async def service(settings, http_client):
    """ChatService over an in-memory database and the fake provider."""
    svc = ChatService(settings, db=DatabaseConnection(":memory:"), http_client=http_client)
    yield svc
    await svc.shutdown()


@pytest.fixture
def intake_form():
    return {"name": "Ana", "email": "a@x.com", "phone": "555", "page_title": "Home"}
