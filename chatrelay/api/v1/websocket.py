"""WebSocket API for live conversation updates."""

import asyncio
import json
from typing import Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from ...exceptions import ChatRelayError
from ...models.session import SessionView
from ...services import ChatService, ConversationSession, Subscription, CONVERSATIONS_TOPIC
from ...utils.logger import get_app_logger
from ..errors import error_body

router = APIRouter(tags=["websocket"])

# Chat service (set by main.py)
chat_service: ChatService = None
logger = get_app_logger("ws")


class ClientMessage(BaseModel):
    """Frame sent by a client over the conversation socket."""

    type: str = Field(description="message or ping")
    content: str = Field(default="", description="Message text for type=message")


async def _forward_events(websocket: WebSocket, subscription: Subscription):
    async for event in subscription:
        await websocket.send_json({"type": "event", **event.model_dump(mode="json")})


@router.websocket("/ws/conversations")
async def inbox_endpoint(websocket: WebSocket):
    """
    Stream conversations-topic events to an inbox client.

    Clients re-fetch GET /api/v1/conversations on each event and once
    after connecting.
    """
    await websocket.accept()
    subscription = chat_service.feed.subscribe(CONVERSATIONS_TOPIC)
    forwarder = asyncio.create_task(_forward_events(websocket, subscription))
    logger.info("Inbox WebSocket connected")

    try:
        await websocket.send_json({"type": "connected", "topic": CONVERSATIONS_TOPIC})
        while True:
            data = await websocket.receive_text()
            try:
                message = ClientMessage(**json.loads(data))
            except (json.JSONDecodeError, TypeError, PydanticValidationError):
                await websocket.send_json({"type": "error", "detail": "Invalid JSON message"})
                continue

            if message.type == "ping":
                await websocket.send_json({"type": "pong"})
            else:
                await websocket.send_json({
                    "type": "error",
                    "detail": f"Unknown message type: {message.type}"
                })

    except WebSocketDisconnect:
        logger.info("Inbox WebSocket disconnected")

    finally:
        subscription.close()
        forwarder.cancel()
        await asyncio.gather(forwarder, return_exceptions=True)


async def _send_and_report(websocket: WebSocket, session: ConversationSession, content: str):
    try:
        result = await session.send(content)
        frame = {"type": "notice", "content": result.notice} if result.notice else None
    except ChatRelayError as e:
        frame = {"type": "error", **error_body(e)}

    if frame is None:
        return
    try:
        await websocket.send_json(frame)
    except (WebSocketDisconnect, RuntimeError) as e:
        # The socket closed while the send was in progress
        logger.info(f"Dropped {frame['type']} frame for {session.conversation_id}, client gone: {e}")


@router.websocket("/ws/conversations/{conversation_id}")
async def conversation_endpoint(websocket: WebSocket, conversation_id: str):
    """
    Live view of one conversation.

    Pushes {"type": "view"} after every change and accepts
    {"type": "message", "content": ...} and {"type": "ping"} frames.
    """
    await websocket.accept()

    async def push_view(view: SessionView):
        await websocket.send_json({"type": "view", "view": view.model_dump(mode="json")})

    try:
        session = await chat_service.open_session(conversation_id, on_change=push_view)
    except ChatRelayError as e:
        await websocket.send_json({"type": "error", **error_body(e)})
        await websocket.close()
        return

    logger.info(f"WebSocket connected for conversation: {conversation_id}")
    sends: Set[asyncio.Task] = set()

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = ClientMessage(**json.loads(data))
            except (json.JSONDecodeError, TypeError, PydanticValidationError):
                await websocket.send_json({"type": "error", "detail": "Invalid JSON message"})
                continue

            if message.type == "message":
                # Sends queue inside the session; keep reading meanwhile
                task = asyncio.create_task(_send_and_report(websocket, session, message.content))
                sends.add(task)
                task.add_done_callback(sends.discard)

            elif message.type == "ping":
                await websocket.send_json({"type": "pong"})

            else:
                await websocket.send_json({
                    "type": "error",
                    "detail": f"Unknown message type: {message.type}"
                })

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for conversation: {conversation_id}")

    finally:
        # Replies already requested still get stored by the session
        for task in list(sends):
            task.cancel()
        await session.close()
