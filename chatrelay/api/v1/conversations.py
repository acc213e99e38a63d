"""Conversation REST API routes - V1."""

from typing import Optional
from fastapi import APIRouter, HTTPException, Depends, Query

from ...models.conversation import (
    IntakeRequest,
    UpdateStatusRequest,
    ConversationResponse,
    ConversationListResponse,
    to_conversation_response,
)
from ...models.message import (
    SendMessageRequest,
    MessageResponse,
    ConversationMessagesResponse,
    SendMessageResponse,
    to_message_response,
)
from ...db.database_models.message import SenderType
from ...services import ChatService

router = APIRouter(prefix="/api/v1/conversations", tags=["Conversations"])

# Chat service (set by main.py)
chat_service: ChatService = None


def get_chat_service() -> ChatService:
    """Dependency to get the chat service."""
    if chat_service is None:
        raise HTTPException(status_code=500, detail="Chat service not initialized")
    return chat_service


@router.get("", response_model=ConversationListResponse)
async def list_conversations(
    q: Optional[str] = Query(None, description="Search user name, email or last message"),
    service: ChatService = Depends(get_chat_service)
):
    """List conversations, newest first, optionally filtered by a search query."""
    conversations = service.directory.search(q)

    return ConversationListResponse(
        conversations=[to_conversation_response(c) for c in conversations],
        total=len(conversations)
    )


@router.post("", response_model=ConversationResponse, status_code=201)
async def submit_intake(
    request: IntakeRequest,
    service: ChatService = Depends(get_chat_service)
):
    """Open a conversation from the intake form; the greeting is posted with it."""
    session = service.new_session()
    try:
        conversation = await session.submit_intake(request)
    finally:
        await session.close()

    return to_conversation_response(conversation)


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: str,
    service: ChatService = Depends(get_chat_service)
):
    """Get conversation details."""
    return to_conversation_response(service.directory.get(conversation_id))


@router.patch("/{conversation_id}/status", response_model=ConversationResponse)
async def update_status(
    conversation_id: str,
    request: UpdateStatusRequest,
    service: ChatService = Depends(get_chat_service)
):
    """Change a conversation's status."""
    conversation = service.directory.update_status(conversation_id, request.status.value)
    return to_conversation_response(conversation)


@router.get("/{conversation_id}/messages", response_model=ConversationMessagesResponse)
async def list_messages(
    conversation_id: str,
    service: ChatService = Depends(get_chat_service)
):
    """Get all messages of a conversation in insertion order."""
    messages = service.store.list_by_conversation(conversation_id)

    return ConversationMessagesResponse(
        conversation_id=conversation_id,
        messages=[to_message_response(m) for m in messages],
        total=len(messages)
    )


@router.post("/{conversation_id}/messages", response_model=SendMessageResponse, status_code=201)
async def send_message(
    conversation_id: str,
    request: SendMessageRequest,
    service: ChatService = Depends(get_chat_service)
):
    """Store a user message and generate the AI reply."""
    session = await service.open_session(conversation_id)
    try:
        result = await session.send(request.content)
    finally:
        await session.close()

    return SendMessageResponse(
        user_message=to_message_response(result.user_message),
        reply=to_message_response(result.reply) if result.reply else None,
        notice=result.notice
    )


@router.post("/{conversation_id}/replies", response_model=MessageResponse, status_code=201)
async def post_company_reply(
    conversation_id: str,
    request: SendMessageRequest,
    service: ChatService = Depends(get_chat_service)
):
    """
    Store a reply written by a company agent.

    Waits behind any AI reply in progress, so the agent's turn never lands
    between a user message and the reply generated for it.
    """
    async with service.scheduler.slot(conversation_id):
        message = await service.store.append(conversation_id, request.content, SenderType.COMPANY.value)
    return to_message_response(message)
