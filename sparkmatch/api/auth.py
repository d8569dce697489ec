"""
Sparkmatch — Auth API

Credential login, token verification, refresh and logout.  Tokens are
stateless; logout only flips the presence flags.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sparkmatch.api.deps import get_current_user, get_profile_service
from sparkmatch.config import get_settings
from sparkmatch.database import get_db
from sparkmatch.models.user import User
from sparkmatch.schemas.common import ApiResponse
from sparkmatch.schemas.user import AuthResponse, LoginRequest, TokenResponse, UserResponse
from sparkmatch.services.profile_service import ProfileService
from sparkmatch.utils.tokens import issue_token

logger = structlog.get_logger("sparkmatch.api.auth")

router = APIRouter()


def _token_for(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=issue_token(user.id),
        expires_in=get_settings().TOKEN_TTL_SECONDS,
    )


@router.post("/login", response_model=ApiResponse[AuthResponse], summary="Log in")
async def login(
    payload: LoginRequest,
    db: AsyncSession = Depends(get_db),
    profiles: ProfileService = Depends(get_profile_service),
) -> ApiResponse[AuthResponse]:
    """Exchange email and password for a fresh access token."""
    user = await profiles.authenticate(payload.email, payload.password, db)
    return ApiResponse(
        message="Login successful",
        data=AuthResponse(user=UserResponse.from_user(user), token=_token_for(user)),
    )


@router.get("/verify-token", response_model=ApiResponse[UserResponse], summary="Verify token")
async def verify_token(user: User = Depends(get_current_user)) -> ApiResponse[UserResponse]:
    return ApiResponse(message="Token is valid", data=UserResponse.from_user(user))


@router.post("/refresh", response_model=ApiResponse[TokenResponse], summary="Refresh token")
async def refresh(user: User = Depends(get_current_user)) -> ApiResponse[TokenResponse]:
    logger.info("token_refreshed", user_id=str(user.id))
    return ApiResponse(message="Token refreshed successfully", data=_token_for(user))


@router.post("/logout", response_model=ApiResponse[None], summary="Log out")
async def logout(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    profiles: ProfileService = Depends(get_profile_service),
) -> ApiResponse[None]:
    await profiles.set_presence(user.id, online=False, db_session=db)
    logger.info("user_logged_out", user_id=str(user.id))
    return ApiResponse(message="Logout successful")
