from abc import ABC, abstractmethod
from typing import Any, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from chat_service.clients.d1_client import D1QueryError
from chat_service.database import ensure_utc, new_id, utc_now
from chat_service.errors import ConflictError, PersistenceError
from chat_service.models.api.users import UserResponse
from chat_service.models.db.user_model import UserModel
from chat_service.repositories.base_repository import BaseRepository
from chat_service.repositories.d1_repository import D1Repository, to_d1_timestamp


def _conflict(id_alias: str) -> ConflictError:
    return ConflictError(f"idAlias '{id_alias}' is already taken")


class UserRepository(ABC):
    """Storage interface for chat users."""

    @abstractmethod
    async def create(
        self,
        id_alias: str,
        name: str,
        avatar_url: Optional[str] = None,
        auth_user_id: Optional[str] = None,
    ) -> UserResponse:
        """Insert a user. A uniqueness violation raises ConflictError."""

    @abstractmethod
    async def find_by_id(self, user_id: str) -> Optional[UserResponse]:
        pass

    @abstractmethod
    async def find_by_id_alias(self, id_alias: str) -> Optional[UserResponse]:
        pass

    @abstractmethod
    async def find_by_auth_user_id(self, auth_user_id: str) -> Optional[UserResponse]:
        pass

    @abstractmethod
    async def list_all(self) -> List[UserResponse]:
        pass

    async def is_id_alias_available(self, id_alias: str) -> bool:
        return await self.find_by_id_alias(id_alias) is None


class SqlAlchemyUserRepository(BaseRepository[UserModel, UserResponse], UserRepository):
    """Repository for chat user operations."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, UserModel)

    async def create(
        self,
        id_alias: str,
        name: str,
        avatar_url: Optional[str] = None,
        auth_user_id: Optional[str] = None,
    ) -> UserResponse:
        db_model = UserModel(
            id=new_id(),
            id_alias=id_alias,
            name=name,
            avatar_url=avatar_url,
            auth_user_id=auth_user_id,
            created_at=utc_now(),
        )
        try:
            return await self._create(db_model)
        except PersistenceError as e:
            # The unique index is the authoritative alias guard
            if isinstance(e.__cause__, IntegrityError):
                raise _conflict(id_alias) from e
            raise

    async def find_by_id(self, user_id: str) -> Optional[UserResponse]:
        return await self.get_by_id(user_id)

    async def find_by_id_alias(self, id_alias: str) -> Optional[UserResponse]:
        db_model = await self._scalar(
            select(UserModel).where(UserModel.id_alias == id_alias)
        )
        return self._to_pydantic(db_model) if db_model else None

    async def find_by_auth_user_id(self, auth_user_id: str) -> Optional[UserResponse]:
        db_model = await self._scalar(
            select(UserModel).where(UserModel.auth_user_id == auth_user_id)
        )
        return self._to_pydantic(db_model) if db_model else None

    async def list_all(self) -> List[UserResponse]:
        db_models = await self._scalars(
            select(UserModel).order_by(UserModel.created_at, UserModel.id)
        )
        return [self._to_pydantic(db_model) for db_model in db_models]

    def _to_pydantic(self, db_model: Any) -> UserResponse:
        """Convert SQLAlchemy UserModel to Pydantic UserResponse."""
        return UserResponse(
            id=db_model.id,
            id_alias=db_model.id_alias,
            name=db_model.name,
            avatar_url=db_model.avatar_url,
            created_at=ensure_utc(db_model.created_at),
        )


class D1UserRepository(D1Repository, UserRepository):
    """Chat users stored in D1."""

    async def create(
        self,
        id_alias: str,
        name: str,
        avatar_url: Optional[str] = None,
        auth_user_id: Optional[str] = None,
    ) -> UserResponse:
        try:
            row = await self._first(
                """
                INSERT INTO users (id, id_alias, name, avatar_url, auth_user_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                RETURNING id, id_alias, name, avatar_url, created_at
                """,
                [
                    new_id(),
                    id_alias,
                    name,
                    avatar_url,
                    auth_user_id,
                    to_d1_timestamp(utc_now()),
                ],
            )
        except D1QueryError as e:
            if e.is_unique_violation:
                raise _conflict(id_alias) from e
            raise
        if not row:
            raise PersistenceError("Failed to create user")
        return UserResponse(**row)

    async def find_by_id(self, user_id: str) -> Optional[UserResponse]:
        return await self._find_one("id", user_id)

    async def find_by_id_alias(self, id_alias: str) -> Optional[UserResponse]:
        return await self._find_one("id_alias", id_alias)

    async def find_by_auth_user_id(self, auth_user_id: str) -> Optional[UserResponse]:
        return await self._find_one("auth_user_id", auth_user_id)

    async def list_all(self) -> List[UserResponse]:
        rows = await self._all(
            "SELECT id, id_alias, name, avatar_url, created_at FROM users "
            "ORDER BY created_at, id"
        )
        return [UserResponse(**row) for row in rows]

    async def _find_one(self, column: str, value: str) -> Optional[UserResponse]:
        # column is always one of our own literals, never caller input
        row = await self._first(
            "SELECT id, id_alias, name, avatar_url, created_at FROM users "
            f"WHERE {column} = ? LIMIT 1",
            [value],
        )
        return UserResponse(**row) if row else None
