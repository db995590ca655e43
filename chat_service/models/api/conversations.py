from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .participants import ParticipantResponse

ConversationType = Literal["direct", "group"]


class CreateConversationRequest(BaseModel):
    """Request model for creating a conversation with its initial participants."""

    type: ConversationType = Field(..., description="'direct' or 'group'")
    name: Optional[str] = Field(
        default=None, description="Conversation name (required for groups)"
    )
    participant_ids: List[str] = Field(..., description="Initial participant user ids")


class ConversationResponse(BaseModel):
    """Response model for conversation data, including its participants."""

    id: str
    type: ConversationType
    name: Optional[str] = None
    created_at: datetime
    participants: List[ParticipantResponse]

    model_config = ConfigDict(from_attributes=True)
