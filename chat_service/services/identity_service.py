from chat_service.errors import NotFoundError
from chat_service.repositories.user_repository import UserRepository


class IdentityService:
    """Maps an authenticated principal to its chat user."""

    def __init__(self, user_repo: UserRepository):
        self.user_repo = user_repo

    async def get_chat_user_id(self, auth_user_id: str) -> str:
        user = await self.user_repo.find_by_auth_user_id(auth_user_id)
        if user is None:
            raise NotFoundError(f"Chat user not found for auth user {auth_user_id}")
        return user.id
