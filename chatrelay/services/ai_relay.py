"""AI relay: turns conversation history into a stored company reply."""

import asyncio
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .message_store import MessageStore
from ..config import Settings
from ..db.database_models.message import MessageDO, SenderType
from ..exceptions import ProtocolError, UpstreamError
from ..utils.logger import get_app_logger


def format_history(history: Sequence[Dict[str, Any]]) -> List[Dict[str, str]]:
    """
    Normalize history turns for the provider.

    Roles other than "assistant" are sent as "user"; blank turns are dropped.
    """
    turns = []
    for turn in history:
        content = str(turn.get("content") or "").strip()
        if not content:
            continue
        role = "assistant" if turn.get("role") == "assistant" else "user"
        turns.append({"role": role, "content": content})
    return turns


def extract_completion(data: Any) -> str:
    """
    Pull the completion text out of a chat-completions response body.

    Raises:
        ProtocolError: the body is not {choices: [{message: {role, content}}]}
            or the content is empty
    """
    if not isinstance(data, dict):
        raise ProtocolError("Response body is not a JSON object")
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        raise ProtocolError("Response has no choices", {"keys": sorted(data.keys())})
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    if not isinstance(message, dict):
        raise ProtocolError("First choice has no message")
    if not isinstance(message.get("role"), str):
        raise ProtocolError("Completion message has no role")
    content = message.get("content")
    if not isinstance(content, str) or not content.strip():
        raise ProtocolError("Completion content is empty")
    return content.strip()


class AIRelay:
    """Calls an OpenAI-compatible chat completions endpoint and stores the reply."""

    def __init__(
        self,
        store: MessageStore,
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Args:
            store: Message store the reply is appended to
            settings: Provider endpoint, credential and sampling options
            client: Optional preconfigured client (tests inject a MockTransport)
        """
        self.store = store
        self.settings = settings
        self._client = client
        self._owns_client = client is None
        self.logger = get_app_logger("relay")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.relay_timeout)
        return self._client

    def build_payload(self, history: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
        """Request body: system instruction followed by the conversation."""
        return {
            "model": self.settings.ai_model,
            "messages": [
                {"role": "system", "content": self.settings.ai_system_prompt},
                *format_history(history),
            ],
            "temperature": self.settings.ai_temperature,
            "max_tokens": self.settings.ai_max_tokens,
        }

    async def _post(self, payload: Dict[str, Any]) -> Any:
        headers = {
            "Authorization": f"Bearer {self.settings.ai_api_key}",
            "Content-Type": "application/json",
        }
        try:
            response = await self._get_client().post(self.settings.ai_api_url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise UpstreamError("request timed out", {"cause": str(e)}) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"request failed: {e}", {"cause": str(e)}) from e

        if response.status_code < 200 or response.status_code >= 300:
            body = response.text[:500]
            self.logger.error(f"Provider returned status {response.status_code}: {body}")
            raise UpstreamError(
                f"provider returned status {response.status_code}",
                {"status_code": response.status_code, "body": body}
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProtocolError("response body is not JSON") from e

    async def complete(self, history: Sequence[Dict[str, Any]]) -> str:
        """
        Ask the provider for the next assistant turn.

        Raises:
            UpstreamError: missing credential, transport failure, timeout or
                non-success status
            ProtocolError: unexpected response shape
        """
        if not self.settings.has_ai_credentials():
            raise UpstreamError("no provider credential configured", error_code="UPSTREAM_NOT_CONFIGURED")

        payload = self.build_payload(history)
        self.logger.debug(f"Calling provider with {len(payload['messages'])} messages")
        try:
            data = await asyncio.wait_for(self._post(payload), timeout=self.settings.relay_timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamError(f"no response within {self.settings.relay_timeout}s") from e
        return extract_completion(data)

    async def reply(self, conversation_id: str, history: Sequence[Dict[str, Any]]) -> MessageDO:
        """
        Generate and store the company reply for a conversation.

        Nothing is stored when the provider call fails.

        Args:
            conversation_id: Conversation to reply in
            history: Ordered {role, content} turns

        Returns:
            The stored company message

        Raises:
            UpstreamError: provider failure (ProtocolError for bad shapes)
            NotFoundError, StorageError: from the message store
        """
        try:
            text = await self.complete(history)
        except UpstreamError as e:
            self.logger.warning(f"Relay for {conversation_id} failed: {e.message}")
            raise
        return await self.store.append(conversation_id, text, SenderType.COMPANY.value)

    async def close(self) -> None:
        """Release the HTTP client if this relay created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
