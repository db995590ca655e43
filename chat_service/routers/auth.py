from fastapi import APIRouter, Depends, Response

from chat_service.dependencies import get_auth_service, get_current_session
from chat_service.models.api.auth import (
    AuthResultResponse,
    AuthSessionContext,
    SignInRequest,
    SignUpRequest,
)
from chat_service.services.auth_service import AuthService

router = APIRouter()


@router.post("/sign-up", response_model=AuthResultResponse, status_code=201)
async def sign_up(
    request: SignUpRequest, service: AuthService = Depends(get_auth_service)
) -> AuthResultResponse:
    """Create an account and its chat user, and open a session."""
    return await service.sign_up(request.username, request.password, request.name)


@router.post("/sign-in", response_model=AuthResultResponse)
async def sign_in(
    request: SignInRequest, service: AuthService = Depends(get_auth_service)
) -> AuthResultResponse:
    return await service.sign_in(request.username, request.password)


@router.post("/sign-out", status_code=204)
async def sign_out(
    context: AuthSessionContext = Depends(get_current_session),
    service: AuthService = Depends(get_auth_service),
) -> Response:
    await service.sign_out(context.session.token)
    return Response(status_code=204)


@router.get("/session", response_model=AuthSessionContext)
async def get_session(
    context: AuthSessionContext = Depends(get_current_session),
) -> AuthSessionContext:
    """Return the authenticated user and session for the bearer token."""
    return context
