# API models for request/response contracts
from .auth import (
    AuthResultResponse,
    AuthSessionContext,
    AuthSessionResponse,
    AuthUserRecord,
    AuthUserResponse,
    SignInRequest,
    SignUpRequest,
)
from .bookmarks import BookmarkListItem, BookmarkResponse, BookmarkStatusResponse
from .conversations import ConversationResponse, CreateConversationRequest
from .messages import MessageResponse, SendMessageRequest
from .participants import AddParticipantRequest, ParticipantResponse
from .reactions import ReactionRequest, ReactionResponse
from .reads import (
    ConversationReadResponse,
    MarkReadResponse,
    UnreadCountResponse,
    UpdateConversationReadRequest,
)
from .users import AliasAvailabilityResponse, CreateUserRequest, UserResponse

__all__ = [
    "AddParticipantRequest",
    "AliasAvailabilityResponse",
    "AuthResultResponse",
    "AuthSessionContext",
    "AuthSessionResponse",
    "AuthUserRecord",
    "AuthUserResponse",
    "BookmarkListItem",
    "BookmarkResponse",
    "BookmarkStatusResponse",
    "ConversationReadResponse",
    "ConversationResponse",
    "CreateConversationRequest",
    "CreateUserRequest",
    "MarkReadResponse",
    "MessageResponse",
    "ParticipantResponse",
    "ReactionRequest",
    "ReactionResponse",
    "SendMessageRequest",
    "SignInRequest",
    "SignUpRequest",
    "UnreadCountResponse",
    "UpdateConversationReadRequest",
    "UserResponse",
]
