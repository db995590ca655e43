# Repository classes for database operations
from .auth_repository import AuthRepository, D1AuthRepository, SqlAlchemyAuthRepository
from .base_repository import BaseRepository
from .chat_repository import ChatRepository
from .d1_chat_repository import D1ChatRepository
from .sqlalchemy_chat_repository import SqlAlchemyChatRepository
from .user_repository import D1UserRepository, SqlAlchemyUserRepository, UserRepository

__all__ = [
    "AuthRepository",
    "BaseRepository",
    "ChatRepository",
    "D1AuthRepository",
    "D1ChatRepository",
    "D1UserRepository",
    "SqlAlchemyAuthRepository",
    "SqlAlchemyChatRepository",
    "SqlAlchemyUserRepository",
    "UserRepository",
]
