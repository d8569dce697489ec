"""
Sparkmatch — Real-time WebSocket endpoint.

``/ws?token=<access token>``.  An authenticated socket joins its user's room
in the ``Notifier`` and receives every server event as a
``{"event", "data"}`` JSON frame.  Clients may send ``typing`` and
``stop_typing`` frames carrying a ``match_id``; they are relayed to the other
participant of that active match.

Sessions are opened per operation so that an idle socket holds no database
connection.
"""

from __future__ import annotations

import json
import uuid
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sparkmatch.database import get_session_factory
from sparkmatch.errors import AuthenticationError
from sparkmatch.models.match import Match
from sparkmatch.models.user import User
from sparkmatch.realtime.notifier import USER_STOP_TYPING, USER_TYPING, Notifier
from sparkmatch.services.match_service import participant_clause
from sparkmatch.services.profile_service import ProfileService
from sparkmatch.utils.tokens import read_token

logger = structlog.get_logger("sparkmatch.api.realtime")

router = APIRouter()

# Close code sent when the handshake token is missing or invalid.
WS_UNAUTHORIZED = 4401

_RELAYED_EVENTS = {
    "typing": USER_TYPING,
    "stop_typing": USER_STOP_TYPING,
}


async def relay_client_event(
    sender_id: uuid.UUID,
    frame: Any,
    notifier: Notifier,
    db_session: AsyncSession,
) -> bool:
    """Forward a typing indicator to the other participant.

    Returns ``True`` when something was relayed.  Unknown events, malformed
    frames and matches the sender is not an active participant of are
    ignored.
    """
    if not isinstance(frame, dict):
        return False
    event = _RELAYED_EVENTS.get(frame.get("event"))
    if event is None:
        return False

    data = frame.get("data")
    if not isinstance(data, dict):
        return False
    try:
        match_id = uuid.UUID(str(data.get("match_id")))
    except ValueError:
        return False

    stmt = select(Match).where(
        Match.id == match_id,
        participant_clause(sender_id),
        Match.is_active.is_(True),
    )
    match = (await db_session.execute(stmt)).scalar_one_or_none()
    if match is None:
        logger.debug("relay_ignored", sender=str(sender_id), match_id=str(match_id))
        return False

    await notifier.emit(
        match.other_user_id(sender_id),
        event,
        {"match_id": match.id, "user_id": sender_id},
    )
    return True


async def _authenticate(
    token: str,
    session_factory: async_sessionmaker[AsyncSession],
) -> User | None:
    try:
        user_id = read_token(token)
    except AuthenticationError:
        return None
    async with session_factory() as db:
        user = await db.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


@router.websocket("/ws")
async def realtime_socket(
    websocket: WebSocket,
    token: str = Query(""),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> None:
    notifier: Notifier = websocket.app.state.notifier

    user = await _authenticate(token, session_factory)
    if user is None:
        logger.info("ws_rejected")
        await websocket.close(code=WS_UNAUTHORIZED)
        return

    log = logger.bind(user_id=str(user.id))
    profiles = ProfileService()

    await websocket.accept()
    notifier.join(user.id, websocket)
    async with session_factory() as db:
        await profiles.set_presence(user.id, online=True, db_session=db)
    log.info("ws_connected")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except ValueError:
                log.warning("ws_bad_frame")
                continue
            async with session_factory() as db:
                await relay_client_event(user.id, frame, notifier, db)
    except WebSocketDisconnect:
        log.info("ws_disconnected")
    finally:
        notifier.leave(user.id, websocket)
        if not notifier.is_online(user.id):
            async with session_factory() as db:
                await profiles.set_presence(user.id, online=False, db_session=db)
