from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from chat_service.clients.d1_client import D1QueryError
from chat_service.database import ensure_utc, new_id, utc_now
from chat_service.errors import ConflictError, PersistenceError
from chat_service.models.api.auth import AuthSessionResponse, AuthUserRecord
from chat_service.models.db.auth_model import AuthSessionModel, AuthUserModel
from chat_service.repositories.base_repository import BaseRepository
from chat_service.repositories.d1_repository import D1Repository, to_d1_timestamp


def _username_taken(username: str) -> ConflictError:
    return ConflictError(f"Username '{username}' is already taken")


class AuthRepository(ABC):
    """Storage interface for credentials and bearer sessions."""

    @abstractmethod
    async def create_user(self, username: str, password_hash: str) -> AuthUserRecord:
        """Insert credentials. A taken username raises ConflictError."""

    @abstractmethod
    async def find_user_by_username(self, username: str) -> Optional[AuthUserRecord]:
        pass

    @abstractmethod
    async def find_user_by_id(self, auth_user_id: str) -> Optional[AuthUserRecord]:
        pass

    @abstractmethod
    async def create_session(
        self, auth_user_id: str, token: str, expires_at: datetime
    ) -> AuthSessionResponse:
        pass

    @abstractmethod
    async def find_session_by_token(self, token: str) -> Optional[AuthSessionResponse]:
        pass

    @abstractmethod
    async def delete_session(self, token: str) -> bool:
        """Remove a session. Returns False when no session had that token."""


class SqlAlchemyAuthRepository(
    BaseRepository[AuthUserModel, AuthUserRecord], AuthRepository
):
    """Repository for auth users and sessions."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, AuthUserModel)

    async def create_user(self, username: str, password_hash: str) -> AuthUserRecord:
        db_model = AuthUserModel(
            id=new_id(),
            username=username,
            password_hash=password_hash,
            created_at=utc_now(),
        )
        try:
            return await self._create(db_model)
        except PersistenceError as e:
            if isinstance(e.__cause__, IntegrityError):
                raise _username_taken(username) from e
            raise

    async def find_user_by_username(self, username: str) -> Optional[AuthUserRecord]:
        db_model = await self._scalar(
            select(AuthUserModel).where(AuthUserModel.username == username)
        )
        return self._to_pydantic(db_model) if db_model else None

    async def find_user_by_id(self, auth_user_id: str) -> Optional[AuthUserRecord]:
        return await self.get_by_id(auth_user_id)

    async def create_session(
        self, auth_user_id: str, token: str, expires_at: datetime
    ) -> AuthSessionResponse:
        db_model = AuthSessionModel(
            id=new_id(),
            auth_user_id=auth_user_id,
            token=token,
            expires_at=expires_at,
            created_at=utc_now(),
        )
        self.db.add(db_model)
        await self._commit()
        return self._to_session(db_model)

    async def find_session_by_token(self, token: str) -> Optional[AuthSessionResponse]:
        db_model = await self._scalar(
            select(AuthSessionModel).where(AuthSessionModel.token == token)
        )
        return self._to_session(db_model) if db_model else None

    async def delete_session(self, token: str) -> bool:
        result = await self._execute(
            delete(AuthSessionModel).where(AuthSessionModel.token == token)
        )
        await self._commit()
        return bool(result.rowcount)

    def _to_pydantic(self, db_model: Any) -> AuthUserRecord:
        return AuthUserRecord(
            id=db_model.id,
            username=db_model.username,
            password_hash=db_model.password_hash,
            created_at=ensure_utc(db_model.created_at),
        )

    def _to_session(self, db_model: Any) -> AuthSessionResponse:
        return AuthSessionResponse(
            id=db_model.id,
            auth_user_id=db_model.auth_user_id,
            token=db_model.token,
            expires_at=ensure_utc(db_model.expires_at),
            created_at=ensure_utc(db_model.created_at),
        )


class D1AuthRepository(D1Repository, AuthRepository):
    """Auth users and sessions stored in D1."""

    async def create_user(self, username: str, password_hash: str) -> AuthUserRecord:
        try:
            row = await self._first(
                """
                INSERT INTO auth_users (id, username, password_hash, created_at)
                VALUES (?, ?, ?, ?)
                RETURNING id, username, password_hash, created_at
                """,
                [new_id(), username, password_hash, to_d1_timestamp(utc_now())],
            )
        except D1QueryError as e:
            if e.is_unique_violation:
                raise _username_taken(username) from e
            raise
        if not row:
            raise PersistenceError("Failed to create auth user")
        return AuthUserRecord(**row)

    async def find_user_by_username(self, username: str) -> Optional[AuthUserRecord]:
        row = await self._first(
            "SELECT id, username, password_hash, created_at FROM auth_users "
            "WHERE username = ? LIMIT 1",
            [username],
        )
        return AuthUserRecord(**row) if row else None

    async def find_user_by_id(self, auth_user_id: str) -> Optional[AuthUserRecord]:
        row = await self._first(
            "SELECT id, username, password_hash, created_at FROM auth_users "
            "WHERE id = ? LIMIT 1",
            [auth_user_id],
        )
        return AuthUserRecord(**row) if row else None

    async def create_session(
        self, auth_user_id: str, token: str, expires_at: datetime
    ) -> AuthSessionResponse:
        row = await self._first(
            """
            INSERT INTO auth_sessions (id, auth_user_id, token, expires_at, created_at)
            VALUES (?, ?, ?, ?, ?)
            RETURNING id, auth_user_id, token, expires_at, created_at
            """,
            [
                new_id(),
                auth_user_id,
                token,
                to_d1_timestamp(expires_at),
                to_d1_timestamp(utc_now()),
            ],
        )
        if not row:
            raise PersistenceError("Failed to create session")
        return AuthSessionResponse(**row)

    async def find_session_by_token(self, token: str) -> Optional[AuthSessionResponse]:
        row = await self._first(
            "SELECT id, auth_user_id, token, expires_at, created_at FROM auth_sessions "
            "WHERE token = ? LIMIT 1",
            [token],
        )
        return AuthSessionResponse(**row) if row else None

    async def delete_session(self, token: str) -> bool:
        result = await self._run("DELETE FROM auth_sessions WHERE token = ?", [token])
        return result.changes > 0
