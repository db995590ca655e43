from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Response

from chat_service.dependencies import get_chat_service, get_current_user_id
from chat_service.models.api.bookmarks import BookmarkStatusResponse
from chat_service.models.api.reactions import ReactionRequest, ReactionResponse
from chat_service.services.chat_service import ChatService

router = APIRouter()


@router.delete("/{message_id}", status_code=204)
async def delete_message(
    message_id: UUID,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
) -> Response:
    """Soft-delete a message (sender or conversation admin only)."""
    await service.delete_message(str(message_id), user_id)
    return Response(status_code=204)


@router.get("/{message_id}/reactions", response_model=List[ReactionResponse])
async def list_reactions(
    message_id: UUID,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
) -> List[ReactionResponse]:
    return await service.list_reactions(str(message_id))


@router.post(
    "/{message_id}/reactions", response_model=ReactionResponse, status_code=201
)
async def add_reaction(
    message_id: UUID,
    request: ReactionRequest,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
) -> ReactionResponse:
    """Add the caller's reaction. Repeating the same emoji returns the existing one."""
    return await service.add_reaction(str(message_id), user_id, request.emoji)


@router.delete("/{message_id}/reactions/{emoji}", response_model=ReactionResponse)
async def remove_reaction(
    message_id: UUID,
    emoji: str,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
) -> ReactionResponse:
    return await service.remove_reaction(str(message_id), emoji, user_id)


@router.post(
    "/{message_id}/bookmarks", response_model=BookmarkStatusResponse, status_code=201
)
async def add_bookmark(
    message_id: UUID,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
) -> BookmarkStatusResponse:
    bookmark = await service.add_bookmark(str(message_id), user_id)
    return BookmarkStatusResponse(status="bookmarked", bookmark=bookmark)


@router.delete("/{message_id}/bookmarks", response_model=BookmarkStatusResponse)
async def remove_bookmark(
    message_id: UUID,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
) -> BookmarkStatusResponse:
    await service.remove_bookmark(str(message_id), user_id)
    return BookmarkStatusResponse(status="unbookmarked")
