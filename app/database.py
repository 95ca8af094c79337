"""Primary store engine and session management."""

import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.models import Base

logger = logging.getLogger(__name__)

# One engine per URL; the URL itself is re-read from settings on every call
_engines: dict[str, AsyncEngine] = {}
_session_makers: dict[str, async_sessionmaker[AsyncSession]] = {}


def get_engine(url: str) -> AsyncEngine:
    """Get (or lazily create) the engine for a database URL."""
    engine = _engines.get(url)
    if engine is None:
        engine = create_async_engine(url, echo=False, pool_pre_ping=True)
        _engines[url] = engine
        logger.info(f"Created primary store engine for {url.split('@')[-1]}")
    return engine


def get_session_maker(url: str) -> async_sessionmaker[AsyncSession]:
    """Get the session factory bound to a database URL."""
    maker = _session_makers.get(url)
    if maker is None:
        maker = async_sessionmaker(
            get_engine(url), class_=AsyncSession, expire_on_commit=False
        )
        _session_makers[url] = maker
    return maker


async def init_primary_schema(url: str) -> None:
    """Create chat tables on the primary store (dev/test; prod uses Alembic)."""
    async with get_engine(url).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engines() -> None:
    """Dispose every cached engine."""
    for engine in list(_engines.values()):
        await engine.dispose()
    _engines.clear()
    _session_makers.clear()
