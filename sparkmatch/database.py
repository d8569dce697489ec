"""
Sparkmatch — Async Database Engine & Session Factory

The engine is built lazily on first use so that importing models (Alembic,
tests, scripts) never opens a connection pool.  Two connection strategies are
supported:

1. **Cloud SQL** – ``cloud-sql-python-connector`` with IAM authentication,
   activated when ``CLOUD_SQL_USE_UNIX_SOCKET`` is *True* **and**
   ``CLOUD_SQL_INSTANCE_CONNECTION`` is set.

2. **URL** – any SQLAlchemy async URL from ``DATABASE_URL``.  A bare
   ``postgresql://`` scheme is upgraded to ``postgresql+asyncpg://``.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from sparkmatch.config import get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Shared declarative base for every Sparkmatch table."""
    pass


def _pool_kwargs() -> dict:
    settings = get_settings()
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": 30,
        "pool_recycle": 1800,
        "pool_pre_ping": True,
    }


def _build_cloud_sql_engine() -> AsyncEngine:
    from google.cloud.sql.connector import Connector

    settings = get_settings()
    connector = Connector()

    async def _get_connection():
        return await connector.connect_async(
            settings.CLOUD_SQL_INSTANCE_CONNECTION,
            "asyncpg",
            user=settings.DB_USER,
            password=settings.DB_PASSWORD,
            db=settings.DB_NAME,
            enable_iam_auth=True,
        )

    logger.info(
        "Database engine created via Cloud SQL Connector (%s)",
        settings.CLOUD_SQL_INSTANCE_CONNECTION,
    )
    return create_async_engine(
        "postgresql+asyncpg://",
        async_creator=_get_connection,
        echo=(settings.LOG_LEVEL == "DEBUG"),
        **_pool_kwargs(),
    )


def _build_url_engine(url: str) -> AsyncEngine:
    settings = get_settings()

    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

    # SQLite uses a single-connection pool that rejects sizing arguments.
    kwargs = {} if url.startswith("sqlite") else _pool_kwargs()

    logger.info("Database engine created from DATABASE_URL")
    return create_async_engine(url, echo=(settings.LOG_LEVEL == "DEBUG"), **kwargs)


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    """Return the process-wide engine, building it on first call."""
    settings = get_settings()
    if settings.CLOUD_SQL_USE_UNIX_SOCKET and settings.CLOUD_SQL_INSTANCE_CONNECTION:
        return _build_cloud_sql_engine()
    return _build_url_engine(settings.DATABASE_URL)


@lru_cache(maxsize=1)
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an ``AsyncSession``; commit on success, roll back on error.

    Services may commit earlier themselves (to publish real-time events only
    after data is durable); the trailing commit is then a no-op.
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
