from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ReactionRequest(BaseModel):
    emoji: str = Field(..., min_length=1, max_length=64, description="Emoji to add")


class ReactionResponse(BaseModel):
    """Response model for reaction data."""

    id: str
    message_id: str
    user_id: str
    emoji: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
