"""FastAPI dependencies: storage selection, services and the caller identity."""

import logging
import os
from typing import AsyncGenerator, NamedTuple, Optional

from dotenv import load_dotenv
from fastapi import Depends, Request

from chat_service import database
from chat_service.clients.d1_client import DEFAULT_D1_API_BASE_URL, D1Client
from chat_service.errors import UnauthenticatedError
from chat_service.models.api.auth import AuthSessionContext
from chat_service.repositories.auth_repository import (
    AuthRepository,
    D1AuthRepository,
    SqlAlchemyAuthRepository,
)
from chat_service.repositories.chat_repository import ChatRepository
from chat_service.repositories.d1_chat_repository import D1ChatRepository
from chat_service.repositories.sqlalchemy_chat_repository import (
    SqlAlchemyChatRepository,
)
from chat_service.repositories.user_repository import (
    D1UserRepository,
    SqlAlchemyUserRepository,
    UserRepository,
)
from chat_service.services.auth_service import AuthService
from chat_service.services.chat_service import ChatService
from chat_service.services.identity_service import IdentityService
from chat_service.services.user_service import UserService

load_dotenv()

logger = logging.getLogger(__name__)

_d1_client: Optional[D1Client] = None


class Repositories(NamedTuple):
    chat: ChatRepository
    users: UserRepository
    auth: AuthRepository


def get_d1_client() -> D1Client:
    """Process-wide D1 client, built from the environment on first use."""
    global _d1_client
    if _d1_client is None:
        settings = {
            "D1_ACCOUNT_ID": os.getenv("D1_ACCOUNT_ID"),
            "D1_DATABASE_ID": os.getenv("D1_DATABASE_ID"),
            "D1_API_TOKEN": os.getenv("D1_API_TOKEN"),
        }
        missing = [key for key, value in settings.items() if not value]
        if missing:
            raise ValueError(
                f"{', '.join(missing)} must be set when DATABASE_BACKEND is 'd1'"
            )
        _d1_client = D1Client(
            account_id=settings["D1_ACCOUNT_ID"],
            database_id=settings["D1_DATABASE_ID"],
            api_token=settings["D1_API_TOKEN"],
            base_url=os.getenv("D1_API_BASE_URL", DEFAULT_D1_API_BASE_URL),
            timeout=float(os.getenv("D1_TIMEOUT_SECONDS", "10")),
        )
    return _d1_client


async def close_d1_client() -> None:
    global _d1_client
    if _d1_client is not None:
        await _d1_client.close()
        _d1_client = None


async def get_repositories() -> AsyncGenerator[Repositories, None]:
    """Repositories for one request, on the configured backend."""
    if database.DATABASE_BACKEND == "d1":
        client = get_d1_client()
        yield Repositories(
            chat=D1ChatRepository(client),
            users=D1UserRepository(client),
            auth=D1AuthRepository(client),
        )
        return

    async for session in database.get_db():
        yield Repositories(
            chat=SqlAlchemyChatRepository(session),
            users=SqlAlchemyUserRepository(session),
            auth=SqlAlchemyAuthRepository(session),
        )


def get_chat_service(repos: Repositories = Depends(get_repositories)) -> ChatService:
    return ChatService(repos.chat)


def get_user_service(repos: Repositories = Depends(get_repositories)) -> UserService:
    return UserService(repos.users)


def get_identity_service(
    repos: Repositories = Depends(get_repositories),
) -> IdentityService:
    return IdentityService(repos.users)


def get_auth_service(repos: Repositories = Depends(get_repositories)) -> AuthService:
    return AuthService(repos.auth, repos.users)


async def get_current_session(
    request: Request, auth_service: AuthService = Depends(get_auth_service)
) -> AuthSessionContext:
    context = await auth_service.get_session(request.headers)
    if context is None:
        raise UnauthenticatedError("Authentication required")
    return context


async def get_current_user_id(
    context: AuthSessionContext = Depends(get_current_session),
    identity_service: IdentityService = Depends(get_identity_service),
) -> str:
    """Chat user id of the authenticated caller."""
    return await identity_service.get_chat_user_id(context.user.id)
