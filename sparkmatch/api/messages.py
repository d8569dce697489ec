"""
Sparkmatch — Messages API

Thin HTTP layer over the message ledger.  Every write is committed and
pushed to connected clients by the service before the response is built.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from sparkmatch.api.deps import get_current_user, get_message_service
from sparkmatch.database import get_db
from sparkmatch.models.user import User
from sparkmatch.schemas.common import ApiResponse
from sparkmatch.schemas.message import (
    MessageCreate,
    MessageEdit,
    MessageResponse,
    MessageStats,
    ReadAllResponse,
    SearchResult,
    UnreadCount,
)
from sparkmatch.services.message_service import MessageService

logger = structlog.get_logger("sparkmatch.api.messages")

router = APIRouter()


@router.post(
    "",
    response_model=ApiResponse[MessageResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Send a message",
)
async def send_message(
    payload: MessageCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    ledger: MessageService = Depends(get_message_service),
) -> ApiResponse[MessageResponse]:
    message = await ledger.send(
        payload.match_id, user, payload.payload, db, reply_to_id=payload.reply_to
    )
    return ApiResponse(
        message="Message sent successfully",
        data=MessageResponse.model_validate(message),
    )


@router.get("/unread-count", response_model=ApiResponse[UnreadCount], summary="Unread messages")
async def unread_count(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    ledger: MessageService = Depends(get_message_service),
) -> ApiResponse[UnreadCount]:
    count = await ledger.unread_count(user.id, db)
    return ApiResponse(data=UnreadCount(unread_count=count))


@router.get("/stats", response_model=ApiResponse[MessageStats], summary="Messaging statistics")
async def message_stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    ledger: MessageService = Depends(get_message_service),
) -> ApiResponse[MessageStats]:
    return ApiResponse(data=await ledger.message_stats(user.id, db))


@router.get("/search", response_model=ApiResponse[SearchResult], summary="Search messages")
async def search_messages(
    q: str = Query(..., min_length=1, max_length=100),
    match_id: Optional[uuid.UUID] = Query(None),
    limit: int = Query(20, ge=1, le=50),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    ledger: MessageService = Depends(get_message_service),
) -> ApiResponse[SearchResult]:
    rows = await ledger.search(user.id, q, db, match_id=match_id, limit=limit)
    messages = [MessageResponse.model_validate(m) for m in rows]
    return ApiResponse(data=SearchResult(messages=messages, query=q, total=len(messages)))


@router.put(
    "/match/{match_id}/read-all",
    response_model=ApiResponse[ReadAllResponse],
    summary="Mark a conversation read",
)
async def mark_all_read(
    match_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    ledger: MessageService = Depends(get_message_service),
) -> ApiResponse[ReadAllResponse]:
    count = await ledger.mark_all_read(match_id, user.id, db)
    return ApiResponse(
        message=f"{count} messages marked as read",
        data=ReadAllResponse(modified_count=count),
    )


@router.put(
    "/{message_id}/read",
    response_model=ApiResponse[MessageResponse],
    summary="Mark a message read",
)
async def mark_read(
    message_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    ledger: MessageService = Depends(get_message_service),
) -> ApiResponse[MessageResponse]:
    message = await ledger.mark_read(message_id, user.id, db)
    return ApiResponse(
        message="Message marked as read",
        data=MessageResponse.model_validate(message),
    )


@router.put(
    "/{message_id}/edit",
    response_model=ApiResponse[MessageResponse],
    summary="Edit a text message",
)
async def edit_message(
    message_id: uuid.UUID,
    payload: MessageEdit,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    ledger: MessageService = Depends(get_message_service),
) -> ApiResponse[MessageResponse]:
    message = await ledger.edit(message_id, user.id, payload.content, db)
    return ApiResponse(
        message="Message edited successfully",
        data=MessageResponse.model_validate(message),
    )


@router.delete("/{message_id}", response_model=ApiResponse[None], summary="Delete a message")
async def delete_message(
    message_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    ledger: MessageService = Depends(get_message_service),
) -> ApiResponse[None]:
    await ledger.soft_delete(message_id, user.id, db)
    logger.info("message_delete_requested", message_id=str(message_id), user_id=str(user.id))
    return ApiResponse(message="Message deleted successfully")
