# SQLAlchemy database models
from .auth_model import AuthSessionModel, AuthUserModel
from .bookmark_model import BookmarkModel
from .conversation_model import ConversationModel
from .conversation_read_model import ConversationReadModel
from .message_model import MessageModel
from .participant_model import ParticipantModel
from .reaction_model import ReactionModel
from .user_model import UserModel

__all__ = [
    "AuthSessionModel",
    "AuthUserModel",
    "BookmarkModel",
    "ConversationModel",
    "ConversationReadModel",
    "MessageModel",
    "ParticipantModel",
    "ReactionModel",
    "UserModel",
]
