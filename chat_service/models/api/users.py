from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CreateUserRequest(BaseModel):
    """Request model for creating a chat user directly (dev only)."""

    id_alias: str = Field(..., description="Unique human-readable handle")
    name: str = Field(..., description="Display name")
    avatar_url: Optional[str] = Field(default=None, description="Avatar image URL")


class UserResponse(BaseModel):
    """Response model for chat user data."""

    id: str
    id_alias: str
    name: str
    avatar_url: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AliasAvailabilityResponse(BaseModel):
    id_alias: str
    available: bool
