"""Test helpers: settings factory, fake AI provider, polling, test app."""

import asyncio
import json
from typing import Any, Dict, List, Optional

import httpx
import pytest
from fastapi import FastAPI

from chatrelay.api.errors import register_exception_handlers
from chatrelay.api.v1 import conversations, websocket
from chatrelay.config import Settings


def make_settings(**overrides) -> Settings:
    """Settings for tests: in-memory database, no log file, no retries."""
    defaults = dict(
        database_path=":memory:",
        log_level="WARNING",
        log_file=None,
        ai_api_url="https://provider.test/v1/chat/completions",
        ai_api_key="test-key",
        ai_model="test-model",
        relay_timeout=2.0,
        relay_max_retries=0,
        relay_retry_backoff=0.0,
    )
    defaults.update(overrides)
    return Settings(**defaults)


def completion(content: str) -> Dict[str, Any]:
    """A well-formed chat-completions response body."""
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class FakeProvider:
    """
    Scriptable chat-completions endpoint for httpx.MockTransport.

    Queued behaviours are consumed in order; once empty, the provider
    answers "Reply to: <last user turn>".
    """

    def __init__(self):
        self.requests: List[Dict[str, Any]] = []
        self.headers: List[httpx.Headers] = []
        self._script: List[Dict[str, Any]] = []
        self.delay = 0.0

    def respond(self, body: Any = None, status: int = 200, delay: float = 0.0, raw: Optional[str] = None):
        self._script.append({"body": body, "status": status, "delay": delay, "raw": raw})

    def fail(self, status: int = 500, delay: float = 0.0):
        self.respond({"error": "boom"}, status=status, delay=delay)

    def raise_error(self, exc: Exception):
        self._script.append({"exc": exc})

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.requests.append(payload)
        self.headers.append(request.headers)

        step = self._script.pop(0) if self._script else {}
        if "exc" in step:
            raise step["exc"]

        delay = step.get("delay") or self.delay
        if delay:
            await asyncio.sleep(delay)

        if step.get("raw") is not None:
            return httpx.Response(step.get("status", 200), text=step["raw"])
        if step.get("body") is not None:
            return httpx.Response(step["status"], json=step["body"])

        last_user = next(
            (m["content"] for m in reversed(payload["messages"]) if m["role"] == "user"),
            ""
        )
        return httpx.Response(200, json=completion(f"Reply to: {last_user}"))


async def wait_for(predicate, timeout: float = 2.0):
    """Poll predicate until it is truthy or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("condition not reached in time")
        await asyncio.sleep(0.01)


def build_test_app() -> FastAPI:
    """FastAPI app without lifespan, with both routers and the error handlers."""
    test_app = FastAPI(title="chatrelay test")
    register_exception_handlers(test_app)
    test_app.include_router(conversations.router)
    test_app.include_router(websocket.router)
    return test_app
