from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .users import UserResponse

ParticipantRole = Literal["member", "admin"]


class AddParticipantRequest(BaseModel):
    """Request model for adding (or re-adding) a participant."""

    user_id: str = Field(..., min_length=1, description="Chat user to add")
    role: ParticipantRole = Field(default="member", description="Participant role")


class ParticipantResponse(BaseModel):
    """Response model for participant data."""

    id: str
    conversation_id: str
    user_id: str
    role: ParticipantRole
    joined_at: datetime
    left_at: Optional[datetime] = None
    user: Optional[UserResponse] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_active(self) -> bool:
        return self.left_at is None
