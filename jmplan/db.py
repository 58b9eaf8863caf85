# jmplan/db.py
# Direct Postgres access, only used for the connectivity check; data goes through Supabase.
from typing import AsyncIterator, Optional

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from . import config

_engine: Optional[AsyncEngine] = None
_sessions: Optional[async_sessionmaker] = None


def session_factory() -> async_sessionmaker:
    """Build the engine on first use so the API starts without SUPABASE_DB_URL."""
    global _engine, _sessions
    if _sessions is None:
        if not config.SUPABASE_DB_URL:
            raise RuntimeError("SUPABASE_DB_URL is not set")
        _engine = create_async_engine(config.SUPABASE_DB_URL, pool_size=5, max_overflow=10, pool_pre_ping=True)
        _sessions = async_sessionmaker(_engine, expire_on_commit=False)
    return _sessions


async def get_session() -> AsyncIterator[AsyncSession]:
    try:
        factory = session_factory()
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))
    async with factory() as session:
        yield session


async def dispose_engine() -> None:
    global _engine, _sessions
    if _engine is not None:
        await _engine.dispose()
    _engine, _sessions = None, None
