from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .reactions import ReactionResponse

MessageType = Literal["text", "system"]
SystemEvent = Literal["join", "leave"]
MessageStatus = Literal["active", "deleted"]


class SendMessageRequest(BaseModel):
    """Request model for sending a text message. The sender comes from the session."""

    text: str = Field(..., min_length=1, description="Message content")
    reply_to_message_id: Optional[str] = Field(
        default=None, description="Message being replied to (same conversation)"
    )


class MessageResponse(BaseModel):
    """Response model for message data."""

    id: str
    conversation_id: str
    sender_user_id: Optional[str] = None  # None for system messages
    type: MessageType
    text: Optional[str] = None
    reply_to_message_id: Optional[str] = None
    system_event: Optional[SystemEvent] = None
    status: MessageStatus = "active"
    deleted_at: Optional[datetime] = None
    deleted_by_user_id: Optional[str] = None
    created_at: datetime
    reactions: List[ReactionResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)
