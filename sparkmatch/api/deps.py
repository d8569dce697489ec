"""
Sparkmatch — Shared API dependencies.

Services are built per request around the process-wide ``Notifier`` kept on
``app.state``; tests swap it through ``app.dependency_overrides``.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from sparkmatch.database import get_db
from sparkmatch.errors import AuthenticationError
from sparkmatch.models.user import User
from sparkmatch.realtime.notifier import Notifier
from sparkmatch.services.match_service import MatchService
from sparkmatch.services.message_service import MessageService
from sparkmatch.services.profile_service import ProfileService
from sparkmatch.services.swipe_service import SwipeService
from sparkmatch.utils.tokens import read_token

_bearer = HTTPBearer(auto_error=False)


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_match_service(notifier: Notifier = Depends(get_notifier)) -> MatchService:
    return MatchService(notifier=notifier)


def get_swipe_service(
    match_service: MatchService = Depends(get_match_service),
) -> SwipeService:
    return SwipeService(match_service)


def get_message_service(
    match_service: MatchService = Depends(get_match_service),
) -> MessageService:
    return MessageService(match_service)


def get_profile_service() -> ProfileService:
    return ProfileService()


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the bearer token to an active ``User``."""
    if credentials is None:
        raise AuthenticationError("Access token required")

    user_id = read_token(credentials.credentials)
    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        raise AuthenticationError("User not found or inactive")
    return user
