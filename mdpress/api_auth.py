"""
API v1 authentication routes
"""
from fastapi import APIRouter, Depends, status

from .api_models import MessageResponse
from .auth_service import AuthService, AuthSession
from .dependencies import get_auth_service, get_current_user
from .models import LoginRequest, LogoutRequest, RefreshRequest, RegisterRequest, TokenPair, UserOut

auth_router = APIRouter(prefix="/auth", tags=["auth"])


def _token_pair(auth: AuthSession) -> TokenPair:
    return TokenPair(
        access_token=auth.access_token,
        refresh_token=auth.refresh_token,
        token_type=auth.token_type,
        user=UserOut.model_validate(auth.user),
    )


@auth_router.post("/register",
    response_model=TokenPair,
    status_code=status.HTTP_201_CREATED,
    summary="Create an account",
    description="Creates the user, a default root folder and a first session."
)
async def register(body: RegisterRequest, auth_service: AuthService = Depends(get_auth_service)):
    return _token_pair(await auth_service.register(body.email, body.password))


@auth_router.post("/login", response_model=TokenPair, summary="Log in with email and password")
async def login(body: LoginRequest, auth_service: AuthService = Depends(get_auth_service)):
    return _token_pair(await auth_service.login(body.email, body.password))


@auth_router.post("/refresh",
    response_model=TokenPair,
    summary="Rotate a refresh token",
    description="Returns a new token pair; the submitted refresh token stops working."
)
async def refresh(body: RefreshRequest, auth_service: AuthService = Depends(get_auth_service)):
    return _token_pair(await auth_service.refresh(body.refresh_token))


@auth_router.post("/logout", response_model=MessageResponse, summary="Revoke one session")
async def logout(
    body: LogoutRequest,
    user_id: int = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service)
):
    await auth_service.logout(user_id, body.refresh_token)
    return MessageResponse(message="Logged out")


@auth_router.post("/logout-all", response_model=MessageResponse, summary="Revoke every session")
async def logout_all(
    user_id: int = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service)
):
    revoked = await auth_service.logout_all(user_id)
    return MessageResponse(message=f"Revoked {revoked} sessions")
