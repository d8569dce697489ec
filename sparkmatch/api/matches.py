"""
Sparkmatch — Matches API

Lists and renders the caller's matches, serves a match's conversation,
unmatching and reporting.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from sparkmatch.api.deps import get_current_user, get_match_service, get_message_service
from sparkmatch.config import get_settings
from sparkmatch.database import get_db
from sparkmatch.models.user import User
from sparkmatch.schemas.common import ApiResponse, Pagination
from sparkmatch.schemas.match import (
    MatchDetails,
    MatchList,
    MatchReport,
    MatchStats,
    RecentActivity,
)
from sparkmatch.schemas.message import MessageList, MessageResponse
from sparkmatch.services.match_service import MatchService
from sparkmatch.services.message_service import MessageService

logger = structlog.get_logger("sparkmatch.api.matches")

router = APIRouter()


@router.get("", response_model=ApiResponse[MatchList], summary="Active matches")
async def list_matches(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=50),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    matches: MatchService = Depends(get_match_service),
) -> ApiResponse[MatchList]:
    items = await matches.list_matches(user.id, db, page=page, limit=limit)
    total = await matches.count_active(user.id, db)
    return ApiResponse(
        data=MatchList(matches=items, pagination=Pagination(page=page, limit=limit, total=total))
    )


@router.get("/stats/overview", response_model=ApiResponse[MatchStats], summary="Match statistics")
async def match_stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    matches: MatchService = Depends(get_match_service),
) -> ApiResponse[MatchStats]:
    return ApiResponse(data=await matches.match_stats(user.id, db))


@router.get(
    "/activity/recent",
    response_model=ApiResponse[RecentActivity],
    summary="Recent matches and messages",
)
async def recent_activity(
    days: Optional[int] = Query(None, ge=1, le=30),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    matches: MatchService = Depends(get_match_service),
) -> ApiResponse[RecentActivity]:
    days = days or get_settings().RECENT_ACTIVITY_DAYS
    return ApiResponse(data=await matches.recent_activity(user.id, db, days=days))


@router.get("/{match_id}", response_model=ApiResponse[MatchDetails], summary="Match details")
async def get_match(
    match_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    matches: MatchService = Depends(get_match_service),
) -> ApiResponse[MatchDetails]:
    match = await matches.get_for_participant(match_id, user.id, db)
    return ApiResponse(data=await matches.details_for_user(match, user.id, db))


@router.delete("/{match_id}", response_model=ApiResponse[None], summary="Unmatch")
async def unmatch(
    match_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    matches: MatchService = Depends(get_match_service),
) -> ApiResponse[None]:
    await matches.unmatch(match_id, user.id, db)
    return ApiResponse(message="Successfully unmatched")


@router.get(
    "/{match_id}/messages",
    response_model=ApiResponse[MessageList],
    summary="Conversation of a match",
)
async def match_messages(
    match_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    matches: MatchService = Depends(get_match_service),
    ledger: MessageService = Depends(get_message_service),
) -> ApiResponse[MessageList]:
    """Chronological page of messages; opening it marks the caller's unread ones read."""
    log = logger.bind(match_id=str(match_id), user_id=str(user.id))

    match = await matches.get_for_participant(match_id, user.id, db, active_only=False)
    rows = await ledger.list_messages(match.id, db, page=page, limit=limit)
    total = await ledger.count_messages(match.id, db)

    if match.is_active:
        read = await ledger.mark_all_read(match.id, user.id, db)
        log.info("conversation_opened", marked_read=read)

    messages = [MessageResponse.model_validate(m) for m in reversed(rows)]
    return ApiResponse(
        data=MessageList(
            messages=messages,
            pagination=Pagination(page=page, limit=limit, total=total),
        )
    )


@router.post("/{match_id}/report", response_model=ApiResponse[None], summary="Report a match")
async def report_match(
    match_id: uuid.UUID,
    payload: MatchReport,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    matches: MatchService = Depends(get_match_service),
) -> ApiResponse[None]:
    await matches.report(match_id, user.id, payload.reason, payload.description, db)
    return ApiResponse(message="Report submitted successfully")
