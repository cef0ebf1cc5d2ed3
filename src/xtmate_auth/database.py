"""Async database engine for the authorization tables.

Engines and session factories are created explicitly and handed to the
stores; nothing here is a module-level singleton.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from .models import Base
from .settings import DatabaseSettings, get_database_settings

logger = logging.getLogger(__name__)


def create_engine(settings: Optional[DatabaseSettings] = None, url: Optional[str] = None) -> AsyncEngine:
    """
    Create an async SQLAlchemy engine.

    Args:
        settings: Database settings. If None, loads from environment.
        url: Explicit database URL, overriding the settings.

    Returns:
        AsyncEngine: Configured async engine instance.
    """
    settings = settings or get_database_settings()
    if url is None:
        if settings.is_sqlite:
            settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        url = settings.async_url
    is_sqlite = "sqlite" in url

    logger.info(f"Creating async database engine ({url.split(':', 1)[0]})")

    if is_sqlite:
        # SQLite doesn't support connection pooling in the traditional sense
        engine = create_async_engine(url, echo=settings.echo_sql, poolclass=NullPool)

        @event.listens_for(engine.sync_engine, "connect")
        def on_connect(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_async_engine(
        url,
        echo=settings.echo_sql,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_pre_ping=settings.pool_pre_ping,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to ``engine``."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_schema(engine: AsyncEngine) -> None:
    """Create the authorization tables if they do not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Authorization schema initialized")
