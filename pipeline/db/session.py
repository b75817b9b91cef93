"""
Async DB session management for pipeline processes.

One engine per process, created on first use from ``Settings.database_url``
(or an explicit URL passed to ``configure_db``) and disposed by ``close_db``
when the worker stops. Every record operation opens its own short session
through ``get_db_session()``.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.ext.asyncio.engine import AsyncEngine

from shared.config import get_settings
from pipeline.db.models import Base

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        # sqlite has no server side to ping and no pool sizing
        return create_async_engine(url, echo=echo)

    # a consumer holds at most one session at a time (prefetch 1)
    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=2,
        max_overflow=2,
    )


def configure_db(database_url: str, echo: bool = False) -> AsyncEngine:
    """Point the process at ``database_url``; replaces any previous engine."""
    global _engine, _session_factory
    _engine = _create_engine(database_url, echo=echo)
    _session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return _engine


def get_engine() -> AsyncEngine:
    if _engine is None:
        s = get_settings()
        configure_db(s.database_url, echo=(s.log_level == "DEBUG"))
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        get_engine()
    return _session_factory


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session; commit on success, rollback on error."""
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """
    Create the tables straight from the models.

    For local runs and tests only; deployed databases get the Alembic
    migrations.
    """
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose the engine on shutdown."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
