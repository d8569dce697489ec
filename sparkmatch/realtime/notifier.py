"""
Sparkmatch — Real-time notifier.

A process-wide registry mapping a user id to the set of live connections that
user currently holds (phone and web tab at the same time is normal).  Events
are fire-and-forget: nothing is persisted for replay, and a user without a
connection simply misses the push and catches up through the REST API.

When a ``RedisBackplane`` is attached, ``emit`` publishes to Redis and every
worker process (this one included) delivers the event to its own local
connections.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from typing import TYPE_CHECKING, Any, Protocol

import structlog
from fastapi.encoders import jsonable_encoder

if TYPE_CHECKING:
    from sparkmatch.realtime.backplane import RedisBackplane

logger = structlog.get_logger("sparkmatch.realtime")

# Server → client event names
NEW_MATCH = "new_match"
RECEIVE_MESSAGE = "receive_message"
MESSAGE_SENT = "message_sent"
MESSAGE_READ = "message_read"
MESSAGES_READ = "messages_read"
MESSAGE_EDITED = "message_edited"
MESSAGE_DELETED = "message_deleted"
UNMATCHED = "unmatched"
USER_TYPING = "user_typing"
USER_STOP_TYPING = "user_stop_typing"


class Connection(Protocol):
    async def send_json(self, data: Any) -> None: ...


class Notifier:
    """Fan-out of events to every live connection of a user."""

    def __init__(self) -> None:
        self._rooms: dict[str, set[Connection]] = defaultdict(set)
        self._backplane: RedisBackplane | None = None

    # ── Membership ────────────────────────────────────────────────────────

    def join(self, user_id: uuid.UUID | str, connection: Connection) -> None:
        room = str(user_id)
        self._rooms[room].add(connection)
        logger.info("room_joined", user_id=room, connections=len(self._rooms[room]))

    def leave(self, user_id: uuid.UUID | str, connection: Connection) -> None:
        room = str(user_id)
        members = self._rooms.get(room)
        if not members:
            return
        members.discard(connection)
        if not members:
            del self._rooms[room]
        logger.info("room_left", user_id=room, connections=len(members))

    def is_online(self, user_id: uuid.UUID | str) -> bool:
        return bool(self._rooms.get(str(user_id)))

    def connection_count(self, user_id: uuid.UUID | str) -> int:
        return len(self._rooms.get(str(user_id), ()))

    # ── Backplane ─────────────────────────────────────────────────────────

    def attach_backplane(self, backplane: RedisBackplane) -> None:
        self._backplane = backplane

    def detach_backplane(self) -> None:
        self._backplane = None

    # ── Delivery ──────────────────────────────────────────────────────────

    async def emit(self, user_id: uuid.UUID | str, event: str, payload: dict) -> None:
        """Push ``event`` to all of the user's connections, best effort."""
        room = str(user_id)
        data = jsonable_encoder(payload)

        if self._backplane is not None:
            try:
                await self._backplane.publish(room, event, data)
                return
            except Exception:
                # Fall back to local delivery; other workers miss this event.
                logger.exception("backplane_publish_failed", user_id=room, event_name=event)

        await self.deliver_local(room, event, data)

    async def deliver_local(self, user_id: str, event: str, data: Any) -> int:
        """Send to connections held by this process; return how many got it."""
        members = list(self._rooms.get(user_id, ()))
        if not members:
            logger.debug("emit_no_connections", user_id=user_id, event_name=event)
            return 0

        delivered = 0
        frame = {"event": event, "data": data}
        for connection in members:
            try:
                await connection.send_json(frame)
                delivered += 1
            except Exception as exc:
                logger.warning(
                    "emit_connection_failed",
                    user_id=user_id,
                    event_name=event,
                    error=str(exc),
                )
                self.leave(user_id, connection)

        logger.debug("emit_delivered", user_id=user_id, event_name=event, delivered=delivered)
        return delivered
