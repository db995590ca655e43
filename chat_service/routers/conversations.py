from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from chat_service.dependencies import get_chat_service, get_current_user_id
from chat_service.models.api.conversations import (
    ConversationResponse,
    CreateConversationRequest,
)
from chat_service.models.api.messages import MessageResponse, SendMessageRequest
from chat_service.models.api.participants import (
    AddParticipantRequest,
    ParticipantResponse,
)
from chat_service.models.api.reads import (
    MarkReadResponse,
    UnreadCountResponse,
    UpdateConversationReadRequest,
)
from chat_service.repositories.chat_repository import DEFAULT_MESSAGE_LIMIT
from chat_service.services.chat_service import ChatService

router = APIRouter()


@router.get("", response_model=List[ConversationResponse])
async def list_conversations(
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
) -> List[ConversationResponse]:
    """List the conversations the caller is an active participant of."""
    return await service.list_conversations_for_user(user_id)


@router.post("", response_model=ConversationResponse, status_code=201)
async def create_conversation(
    request: CreateConversationRequest,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
) -> ConversationResponse:
    return await service.create_conversation(
        request.type, request.name, request.participant_ids
    )


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: UUID,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
) -> ConversationResponse:
    """
    Get a conversation with its participants.

    Path parameters:
    - conversation_id: UUID of the conversation
    """
    return await service.get_conversation(str(conversation_id), user_id)


@router.post(
    "/{conversation_id}/participants",
    response_model=ParticipantResponse,
    status_code=201,
)
async def add_participant(
    conversation_id: UUID,
    request: AddParticipantRequest,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
) -> ParticipantResponse:
    """Add (or re-add) a participant and post a join system message."""
    return await service.add_participant(
        str(conversation_id), request.user_id, request.role
    )


@router.post("/{conversation_id}/leave", response_model=ParticipantResponse)
async def leave_conversation(
    conversation_id: UUID,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
) -> ParticipantResponse:
    return await service.remove_participant(str(conversation_id), user_id)


@router.get("/{conversation_id}/messages", response_model=List[MessageResponse])
async def list_messages(
    conversation_id: UUID,
    limit: int = Query(
        DEFAULT_MESSAGE_LIMIT, description="Maximum number of messages (1-100)"
    ),
    before: Optional[datetime] = Query(
        None, description="Only messages created strictly before this time"
    ),
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
) -> List[MessageResponse]:
    """
    Get active messages of a conversation, newest first.

    Query parameters:
    - limit: Maximum number of messages to return (default: 50, max: 100)
    - before: ISO-8601 timestamp used as an exclusive upper bound
    """
    return await service.list_messages(
        str(conversation_id), user_id, limit=limit, before=before
    )


@router.post(
    "/{conversation_id}/messages", response_model=MessageResponse, status_code=201
)
async def send_message(
    conversation_id: UUID,
    request: SendMessageRequest,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
) -> MessageResponse:
    """Send a text message as the caller."""
    return await service.send_message(
        str(conversation_id),
        user_id,
        request.text,
        reply_to_message_id=request.reply_to_message_id,
    )


@router.post("/{conversation_id}/read", response_model=MarkReadResponse)
async def mark_conversation_read(
    conversation_id: UUID,
    request: UpdateConversationReadRequest,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
) -> MarkReadResponse:
    read = await service.mark_conversation_read(
        str(conversation_id), user_id, request.last_read_message_id
    )
    return MarkReadResponse(status="ok", read=read)


@router.get("/{conversation_id}/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    conversation_id: UUID,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
) -> UnreadCountResponse:
    count = await service.count_unread(str(conversation_id), user_id)
    return UnreadCountResponse(unread_count=count)
