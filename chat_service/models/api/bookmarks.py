from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class BookmarkResponse(BaseModel):
    """Response model for bookmark data."""

    id: str
    message_id: str
    user_id: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookmarkListItem(BaseModel):
    """A bookmark joined with the message it points at."""

    message_id: str
    conversation_id: str
    text: Optional[str] = None
    created_at: datetime
    message_created_at: datetime


class BookmarkStatusResponse(BaseModel):
    status: str
    bookmark: Optional[BookmarkResponse] = None
