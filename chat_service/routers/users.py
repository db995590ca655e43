from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from chat_service.dependencies import get_current_user_id, get_user_service
from chat_service.models.api.users import (
    AliasAvailabilityResponse,
    CreateUserRequest,
    UserResponse,
)
from chat_service.services.user_service import UserService

router = APIRouter()

# Registered only outside production
dev_router = APIRouter()


@dev_router.get("", response_model=List[UserResponse])
async def list_users(
    service: UserService = Depends(get_user_service),
) -> List[UserResponse]:
    return await service.list_users()


@dev_router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    request: CreateUserRequest,
    service: UserService = Depends(get_user_service),
) -> UserResponse:
    """Create a chat user without credentials (seeding and local testing)."""
    return await service.create_user(
        id_alias=request.id_alias, name=request.name, avatar_url=request.avatar_url
    )


@router.get("/me", response_model=UserResponse)
async def get_me(
    user_id: str = Depends(get_current_user_id),
    service: UserService = Depends(get_user_service),
) -> UserResponse:
    return await service.get_user_by_id(user_id)


@router.get("/alias-availability", response_model=AliasAvailabilityResponse)
async def alias_availability(
    id_alias: str = Query(..., min_length=1, description="Handle to check"),
    service: UserService = Depends(get_user_service),
) -> AliasAvailabilityResponse:
    available = await service.is_id_alias_available(id_alias)
    return AliasAvailabilityResponse(id_alias=id_alias, available=available)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: UUID,
    caller_id: str = Depends(get_current_user_id),
    service: UserService = Depends(get_user_service),
) -> UserResponse:
    return await service.get_user_by_id(str(user_id))
