"""
Sparkmatch — Redis pub/sub backplane for multi-process fan-out.

Every worker subscribes to one channel.  ``publish`` serialises
``{user_id, event, data}``; the listener task hands each received envelope to
the local ``Notifier.deliver_local`` so whichever process holds the user's
socket delivers it.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from sparkmatch.realtime.notifier import Notifier

logger = structlog.get_logger("sparkmatch.realtime.backplane")


class RedisBackplane:
    def __init__(self, redis: Redis, channel: str, notifier: Notifier) -> None:
        self._redis = redis
        self._channel = channel
        self._notifier = notifier
        self._pubsub = None
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        self._pubsub = self._redis.pubsub()
        await self._pubsub.subscribe(self._channel)
        self._task = asyncio.create_task(self._listen(), name="sparkmatch-backplane")
        self._notifier.attach_backplane(self)
        logger.info("backplane_started", channel=self._channel)

    async def stop(self) -> None:
        self._notifier.detach_backplane()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._pubsub is not None:
            await self._pubsub.unsubscribe(self._channel)
            await self._pubsub.aclose()
            self._pubsub = None
        logger.info("backplane_stopped", channel=self._channel)

    async def publish(self, user_id: str, event: str, data) -> None:
        envelope = json.dumps({"user_id": user_id, "event": event, "data": data})
        await self._redis.publish(self._channel, envelope)

    async def handle(self, raw: str | bytes) -> None:
        """Dispatch one envelope received from the channel."""
        try:
            envelope = json.loads(raw)
            user_id = envelope["user_id"]
            event = envelope["event"]
        except (ValueError, KeyError, TypeError):
            logger.warning("backplane_bad_envelope")
            return
        await self._notifier.deliver_local(user_id, event, envelope.get("data"))

    async def _listen(self) -> None:
        async for message in self._pubsub.listen():
            if message.get("type") != "message":
                continue
            try:
                await self.handle(message["data"])
            except Exception:
                logger.exception("backplane_dispatch_failed")
