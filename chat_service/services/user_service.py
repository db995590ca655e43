import logging
import re
from typing import List, Optional

from chat_service.errors import ConflictError, InvalidRequestError, NotFoundError
from chat_service.models.api.users import UserResponse
from chat_service.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

ID_ALIAS_PATTERN = re.compile(r"^[A-Za-z0-9_]{3,20}$")


def validate_id_alias(id_alias: str) -> str:
    """Trim an alias and check its shape. Returns the trimmed value."""
    id_alias = (id_alias or "").strip()
    if not id_alias:
        raise InvalidRequestError("idAlias is required")
    if not ID_ALIAS_PATTERN.match(id_alias):
        raise InvalidRequestError(
            "idAlias must be 3-20 characters of letters, digits or underscores"
        )
    return id_alias


class UserService:
    """Service for chat user profiles."""

    def __init__(self, user_repo: UserRepository):
        self.user_repo = user_repo

    async def create_user(
        self,
        id_alias: str,
        name: str,
        avatar_url: Optional[str] = None,
        auth_user_id: Optional[str] = None,
    ) -> UserResponse:
        name = (name or "").strip()
        if not name:
            raise InvalidRequestError("User name is required")
        id_alias = validate_id_alias(id_alias)

        # The unique index remains the final guard against concurrent inserts
        if not await self.user_repo.is_id_alias_available(id_alias):
            raise ConflictError(f"idAlias '{id_alias}' is already taken")

        user = await self.user_repo.create(
            id_alias=id_alias,
            name=name,
            avatar_url=avatar_url,
            auth_user_id=auth_user_id,
        )
        logger.info("Created user %s (%s)", user.id, user.id_alias)
        return user

    async def get_user_by_id(self, user_id: str) -> UserResponse:
        user = await self.user_repo.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def list_users(self) -> List[UserResponse]:
        return await self.user_repo.list_all()

    async def is_id_alias_available(self, id_alias: str) -> bool:
        return await self.user_repo.is_id_alias_available(id_alias.strip())
