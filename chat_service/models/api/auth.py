from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .users import UserResponse


class SignUpRequest(BaseModel):
    username: str = Field(..., description="Login name, also used as the chat idAlias")
    password: str = Field(..., description="Plain-text password (min 8 characters)")
    name: str = Field(..., description="Display name")


class SignInRequest(BaseModel):
    username: str
    password: str


class AuthUserResponse(BaseModel):
    """Credentials row, without the password hash."""

    id: str
    username: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuthUserRecord(AuthUserResponse):
    password_hash: str


class AuthSessionResponse(BaseModel):
    id: str
    auth_user_id: str
    token: str
    expires_at: datetime
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuthSessionContext(BaseModel):
    """What the identity collaborator hands to the boundary: {user, session}."""

    user: AuthUserResponse
    session: AuthSessionResponse


class AuthResultResponse(BaseModel):
    user: UserResponse
    session: AuthSessionResponse
