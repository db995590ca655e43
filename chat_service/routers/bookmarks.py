from typing import List

from fastapi import APIRouter, Depends

from chat_service.dependencies import get_chat_service, get_current_user_id
from chat_service.models.api.bookmarks import BookmarkListItem
from chat_service.services.chat_service import ChatService

router = APIRouter()


@router.get("", response_model=List[BookmarkListItem])
async def list_bookmarks(
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
) -> List[BookmarkListItem]:
    """The caller's bookmarks with message text, newest first."""
    return await service.list_bookmarks(user_id)
