import hashlib
import hmac
import logging
import os
import re
import secrets
from datetime import timedelta
from typing import Mapping, Optional

from dotenv import load_dotenv

from chat_service.database import ensure_utc, utc_now
from chat_service.errors import (
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    UnauthenticatedError,
)
from chat_service.models.api.auth import (
    AuthResultResponse,
    AuthSessionContext,
    AuthSessionResponse,
    AuthUserResponse,
)
from chat_service.repositories.auth_repository import AuthRepository
from chat_service.repositories.user_repository import UserRepository
from chat_service.services.user_service import UserService

load_dotenv()

logger = logging.getLogger(__name__)

SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", "604800"))

PASSWORD_HASH_ALGORITHM = "pbkdf2_sha256"
PASSWORD_HASH_ITERATIONS = 310000
MIN_PASSWORD_LENGTH = 8
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]{3,20}$")

INVALID_CREDENTIALS = "Invalid username or password"


def hash_password(password: str, iterations: Optional[int] = None) -> str:
    """Return ``algorithm$iterations$salt$digest`` with a fresh random salt."""
    iterations = iterations or PASSWORD_HASH_ITERATIONS
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations
    )
    return f"{PASSWORD_HASH_ALGORITHM}${iterations}${salt}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        algorithm, iterations, salt, expected = encoded.split("$", 3)
        rounds = int(iterations)
    except ValueError:
        return False
    if algorithm != PASSWORD_HASH_ALGORITHM:
        return False
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), salt.encode("utf-8"), rounds
    )
    return hmac.compare_digest(digest.hex(), expected)


def bearer_token(headers: Mapping[str, str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer`` header."""
    authorization = headers.get("authorization") or headers.get("Authorization")
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class AuthService:
    """Username/password accounts and bearer sessions."""

    def __init__(
        self,
        auth_repo: AuthRepository,
        user_repo: UserRepository,
        session_ttl_seconds: int = SESSION_TTL_SECONDS,
    ):
        self.auth_repo = auth_repo
        self.user_repo = user_repo
        self.user_service = UserService(user_repo)
        self.session_ttl = timedelta(seconds=session_ttl_seconds)

    async def sign_up(self, username: str, password: str, name: str) -> AuthResultResponse:
        """
        Register an account:
        1. Validate credentials and reject taken usernames or aliases
        2. Store the auth user with a hashed password
        3. Create the linked chat user (idAlias = username)
        4. Open a session
        """
        username = (username or "").strip()
        if not USERNAME_PATTERN.match(username):
            raise InvalidRequestError(
                "Username must be 3-20 characters of letters, digits or underscores"
            )
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise InvalidRequestError("Password must be at least 8 characters")
        if not (name or "").strip():
            raise InvalidRequestError("User name is required")

        if await self.auth_repo.find_user_by_username(username) is not None:
            raise ConflictError(f"Username '{username}' is already taken")
        if not await self.user_repo.is_id_alias_available(username):
            raise ConflictError(f"idAlias '{username}' is already taken")

        auth_user = await self.auth_repo.create_user(username, hash_password(password))
        user = await self.user_service.create_user(
            id_alias=username, name=name, auth_user_id=auth_user.id
        )
        session = await self._open_session(auth_user.id)
        logger.info("Signed up %s as chat user %s", username, user.id)
        return AuthResultResponse(user=user, session=session)

    async def sign_in(self, username: str, password: str) -> AuthResultResponse:
        auth_user = await self.auth_repo.find_user_by_username((username or "").strip())
        if auth_user is None or not verify_password(password or "", auth_user.password_hash):
            logger.warning("Failed sign-in for %s", username)
            raise UnauthenticatedError(INVALID_CREDENTIALS)

        user = await self.user_repo.find_by_auth_user_id(auth_user.id)
        if user is None:
            raise NotFoundError(f"Chat user not found for auth user {auth_user.id}")

        session = await self._open_session(auth_user.id)
        return AuthResultResponse(user=user, session=session)

    async def get_session(
        self, headers: Mapping[str, str]
    ) -> Optional[AuthSessionContext]:
        """Resolve the bearer token to ``{user, session}``, or None."""
        token = bearer_token(headers)
        if token is None:
            return None

        session = await self.auth_repo.find_session_by_token(token)
        if session is None:
            return None
        if ensure_utc(session.expires_at) <= utc_now():
            await self.auth_repo.delete_session(token)
            return None

        auth_user = await self.auth_repo.find_user_by_id(session.auth_user_id)
        if auth_user is None:
            return None

        return AuthSessionContext(
            user=AuthUserResponse(
                id=auth_user.id,
                username=auth_user.username,
                created_at=auth_user.created_at,
            ),
            session=session,
        )

    async def sign_out(self, token: str) -> None:
        await self.auth_repo.delete_session(token)

    async def _open_session(self, auth_user_id: str) -> AuthSessionResponse:
        return await self.auth_repo.create_session(
            auth_user_id,
            secrets.token_urlsafe(32),
            utc_now() + self.session_ttl,
        )
