#!/usr/bin/env python3
"""
Sparkmatch — Swipe retention job

Deletes swipes older than the retention window so that the people behind
them show up in discovery again.

Usage examples
--------------
  # Prune every user's swipes older than SWIPE_RETENTION_DAYS
  python scripts/prune_swipes.py

  # Prune a single user with a custom window
  python scripts/prune_swipes.py --user 5f0c... --days 14

  # Report what would be pruned without deleting
  python scripts/prune_swipes.py --dry-run
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import uuid
from datetime import timedelta

# Ensure the project root is importable
sys.path.insert(0, ".")

import structlog
from sqlalchemy import func, select

from sparkmatch.config import get_settings
from sparkmatch.database import get_engine, get_session_factory
from sparkmatch.models.match import Swipe
from sparkmatch.models.types import utcnow
from sparkmatch.services.match_service import MatchService
from sparkmatch.services.swipe_service import SwipeService

logger = structlog.get_logger("sparkmatch.scripts.prune_swipes")


async def _swipers(session, user_id: uuid.UUID | None) -> list[uuid.UUID]:
    if user_id is not None:
        return [user_id]
    rows = await session.execute(select(Swipe.swiper_id).distinct())
    return list(rows.scalars())


async def prune(user_id: uuid.UUID | None, days: int, dry_run: bool) -> int:
    service = SwipeService(MatchService())
    cutoff = utcnow() - timedelta(days=days)
    removed = 0

    async with get_session_factory()() as session:
        for swiper_id in await _swipers(session, user_id):
            if dry_run:
                stmt = select(func.count(Swipe.id)).where(
                    Swipe.swiper_id == swiper_id, Swipe.created_at < cutoff
                )
                removed += (await session.execute(stmt)).scalar_one()
                continue
            removed += await service.prune_swipes(swiper_id, session, older_than_days=days)
            await session.commit()

    await get_engine().dispose()
    logger.info("prune_complete", removed=removed, days=days, dry_run=dry_run)
    return removed


def main() -> None:
    parser = argparse.ArgumentParser(description="Delete swipes older than the retention window")
    parser.add_argument("--user", type=uuid.UUID, default=None, help="Only prune this user's swipes")
    parser.add_argument(
        "--days",
        type=int,
        default=get_settings().SWIPE_RETENTION_DAYS,
        help="Retention window in days",
    )
    parser.add_argument("--dry-run", action="store_true", help="Count without deleting")
    args = parser.parse_args()

    removed = asyncio.run(prune(args.user, args.days, args.dry_run))
    verb = "Would remove" if args.dry_run else "Removed"
    print(f"{verb} {removed} swipe(s) older than {args.days} days")


if __name__ == "__main__":
    main()
