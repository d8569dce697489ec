"""
Sparkmatch — Users API

Registration, own-profile management, photos, location, the discovery feed
and swiping.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from sparkmatch.api.deps import (
    get_current_user,
    get_match_service,
    get_profile_service,
    get_swipe_service,
)
from sparkmatch.config import get_settings
from sparkmatch.database import get_db
from sparkmatch.errors import TargetNotFoundError
from sparkmatch.models.user import User
from sparkmatch.schemas.common import ApiResponse
from sparkmatch.schemas.match import ProfileSummary, UserStats
from sparkmatch.schemas.user import (
    AuthResponse,
    DiscoverResponse,
    Location,
    LocationResponse,
    LocationUpdate,
    PhotoCreate,
    PhotoList,
    PublicProfile,
    SwipeCreate,
    SwipeResponse,
    TokenResponse,
    UserCreate,
    UserResponse,
    UserUpdate,
)
from sparkmatch.services.match_service import MatchService
from sparkmatch.services.profile_service import ProfileService
from sparkmatch.services.swipe_service import SwipeService
from sparkmatch.utils.tokens import issue_token

logger = structlog.get_logger("sparkmatch.api.users")

router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# POST / — Register
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "",
    response_model=ApiResponse[AuthResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def register(
    payload: UserCreate,
    db: AsyncSession = Depends(get_db),
    profiles: ProfileService = Depends(get_profile_service),
) -> ApiResponse[AuthResponse]:
    """Create the account and hand back an access token for it."""
    user = await profiles.register(payload, db)
    token = TokenResponse(
        access_token=issue_token(user.id),
        expires_in=get_settings().TOKEN_TTL_SECONDS,
    )
    return ApiResponse(
        message="User registered successfully",
        data=AuthResponse(user=UserResponse.from_user(user), token=token),
    )


# ──────────────────────────────────────────────────────────────────────────────
# /me — Own profile
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/me", response_model=ApiResponse[UserResponse], summary="Current user")
async def get_me(user: User = Depends(get_current_user)) -> ApiResponse[UserResponse]:
    return ApiResponse(data=UserResponse.from_user(user))


@router.put("/me", response_model=ApiResponse[UserResponse], summary="Update profile")
async def update_me(
    payload: UserUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    profiles: ProfileService = Depends(get_profile_service),
) -> ApiResponse[UserResponse]:
    user = await profiles.update_profile(user, payload, db)
    return ApiResponse(message="Profile updated successfully", data=UserResponse.from_user(user))


@router.delete("/me", response_model=ApiResponse[None], summary="Deactivate account")
async def delete_me(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    profiles: ProfileService = Depends(get_profile_service),
) -> ApiResponse[None]:
    await profiles.deactivate(user, db)
    return ApiResponse(message="Account deactivated successfully")


# ──────────────────────────────────────────────────────────────────────────────
# Discovery & swiping
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/discover",
    response_model=ApiResponse[DiscoverResponse],
    summary="Candidates for the swipe deck",
)
async def discover(
    limit: Optional[int] = Query(None, ge=1, le=50, description="Max candidates to return"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    swipes: SwipeService = Depends(get_swipe_service),
) -> ApiResponse[DiscoverResponse]:
    limit = limit or get_settings().DISCOVERY_DEFAULT_LIMIT
    candidates = [
        PublicProfile.model_validate(candidate)
        async for candidate in swipes.potential_matches(user, db, limit=limit)
    ]
    logger.info("discover", user_id=str(user.id), count=len(candidates))
    return ApiResponse(data=DiscoverResponse(users=candidates, count=len(candidates)))


@router.post("/swipe", response_model=ApiResponse[SwipeResponse], summary="Like or pass")
async def swipe(
    payload: SwipeCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    swipes: SwipeService = Depends(get_swipe_service),
) -> ApiResponse[SwipeResponse]:
    outcome = await swipes.record_swipe(user, payload.target_user_id, payload.action, db)
    message = "It's a match!" if outcome.matched else "Swipe recorded successfully"
    return ApiResponse(
        message=message,
        data=SwipeResponse(
            action=outcome.action,
            match=outcome.matched,
            match_id=outcome.match_id,
        ),
    )


@router.get(
    "/profile/{user_id}",
    response_model=ApiResponse[PublicProfile],
    summary="Public profile of another user",
)
async def get_profile(
    user_id: uuid.UUID,
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    profiles: ProfileService = Depends(get_profile_service),
) -> ApiResponse[PublicProfile]:
    other = await profiles.get_public(user_id, db)
    if other is None:
        raise TargetNotFoundError()
    return ApiResponse(data=PublicProfile.model_validate(other))


# ──────────────────────────────────────────────────────────────────────────────
# Photos
# ──────────────────────────────────────────────────────────────────────────────

@router.post("/photos", response_model=ApiResponse[PhotoList], summary="Add a photo URL")
async def add_photo(
    payload: PhotoCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    profiles: ProfileService = Depends(get_profile_service),
) -> ApiResponse[PhotoList]:
    photos = await profiles.add_photo(user, str(payload.photo_url), payload.is_main, db)
    return ApiResponse(message="Photo uploaded successfully", data=PhotoList(photos=photos))


@router.delete(
    "/photos/{photo_id}",
    response_model=ApiResponse[PhotoList],
    summary="Remove a photo",
)
async def delete_photo(
    photo_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    profiles: ProfileService = Depends(get_profile_service),
) -> ApiResponse[PhotoList]:
    photos = await profiles.remove_photo(user, photo_id, db)
    return ApiResponse(message="Photo deleted successfully", data=PhotoList(photos=photos))


@router.put(
    "/photos/{photo_id}/main",
    response_model=ApiResponse[PhotoList],
    summary="Make a photo the main one",
)
async def set_main_photo(
    photo_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    profiles: ProfileService = Depends(get_profile_service),
) -> ApiResponse[PhotoList]:
    photos = await profiles.set_main_photo(user, photo_id, db)
    return ApiResponse(message="Main photo updated successfully", data=PhotoList(photos=photos))


# ──────────────────────────────────────────────────────────────────────────────
# Location & statistics
# ──────────────────────────────────────────────────────────────────────────────

@router.put("/location", response_model=ApiResponse[LocationResponse], summary="Update location")
async def update_location(
    payload: LocationUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    profiles: ProfileService = Depends(get_profile_service),
) -> ApiResponse[LocationResponse]:
    user = await profiles.update_location(user, payload, db)
    location = Location(
        longitude=user.longitude,
        latitude=user.latitude,
        city=user.city,
        country=user.country,
    )
    return ApiResponse(
        message="Location updated successfully",
        data=LocationResponse(location=location),
    )


@router.get("/stats", response_model=ApiResponse[UserStats], summary="Swipe and match statistics")
async def user_stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    swipes: SwipeService = Depends(get_swipe_service),
    matches: MatchService = Depends(get_match_service),
    profiles: ProfileService = Depends(get_profile_service),
) -> ApiResponse[UserStats]:
    stats = UserStats(
        swipes=await swipes.swipe_stats(user.id, db),
        matches=await matches.match_stats(user.id, db),
        profile=ProfileSummary(
            completeness=profiles.completeness(user),
            photos_count=len(user.photos or []),
            joined_date=user.created_at,
            last_active=user.last_active,
        ),
    )
    return ApiResponse(data=stats)
