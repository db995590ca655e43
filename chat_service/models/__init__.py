# Export all models
from .api import (
    ConversationResponse,
    MessageResponse,
    ParticipantResponse,
    ReactionResponse,
    UserResponse,
)
from .db import (
    BookmarkModel,
    ConversationModel,
    ConversationReadModel,
    MessageModel,
    ParticipantModel,
    ReactionModel,
    UserModel,
)

__all__ = [
    # API models
    "ConversationResponse",
    "MessageResponse",
    "ParticipantResponse",
    "ReactionResponse",
    "UserResponse",
    # DB models
    "BookmarkModel",
    "ConversationModel",
    "ConversationReadModel",
    "MessageModel",
    "ParticipantModel",
    "ReactionModel",
    "UserModel",
]
