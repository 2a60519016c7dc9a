"""Database engine helpers and the persistence availability flag."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from workflow_dispatcher.config import Settings
from workflow_dispatcher.models.base import Base

logger = logging.getLogger(__name__)


def build_database_url(settings: Settings) -> Optional[URL]:
    """Return the connection URL, or None when no database is configured."""
    if not settings.database_configured:
        return None
    if settings.DATABASE_URL:
        url = make_url(settings.DATABASE_URL)
        if url.drivername in {"postgresql", "postgres"}:
            url = url.set(drivername="postgresql+asyncpg")
        return url
    return URL.create(
        drivername="postgresql+asyncpg",
        username=settings.DB_USER,
        password=settings.DB_PASSWORD,
        host=settings.DB_HOST,
        port=settings.DB_PORT,
        database=settings.DB_NAME,
    )


def create_engine_from_settings(settings: Settings) -> Optional[AsyncEngine]:
    url = build_database_url(settings)
    if url is None:
        return None
    kwargs = {"pool_pre_ping": True}
    if url.get_backend_name() == "postgresql":
        kwargs.update(
            pool_size=settings.DB_POOL_MAX,
            pool_recycle=int(settings.DB_IDLE_TIMEOUT),
            pool_timeout=settings.DB_CONNECTION_TIMEOUT,
            connect_args={"timeout": settings.DB_CONNECTION_TIMEOUT},
        )
    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_schema(engine: AsyncEngine) -> None:
    """Create the ``workflow_runs`` table if it does not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


class ConnectionState:
    """
    Advisory flag telling callers whether persistence is reachable.

    Created once at startup and handed to every component that writes
    workflow run records. ``is_available`` never blocks; callers still
    handle storage errors because the flag can be stale.
    """

    def __init__(self, engine: Optional[AsyncEngine] = None) -> None:
        self._engine = engine
        self._available = False

    @property
    def engine(self) -> Optional[AsyncEngine]:
        return self._engine

    def is_available(self) -> bool:
        return self._available

    async def check_and_set(self) -> bool:
        if self._engine is None:
            self._available = False
            return False
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as exc:
            logger.warning("Database connection failed: %s", exc)
            self._available = False
            return False
        self._available = True
        return True
