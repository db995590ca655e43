from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class UpdateConversationReadRequest(BaseModel):
    last_read_message_id: str = Field(
        ..., min_length=1, description="Last message the caller has read"
    )


class ConversationReadResponse(BaseModel):
    """Response model for a per-user read cursor."""

    id: str
    conversation_id: str
    user_id: str
    last_read_message_id: Optional[str] = None
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MarkReadResponse(BaseModel):
    status: str = "ok"
    read: ConversationReadResponse


class UnreadCountResponse(BaseModel):
    unread_count: int = Field(..., ge=0)
