"""Async session helpers for the pipeline database."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ingestion.db.models import Base

_ENGINES: Dict[str, AsyncEngine] = {}
_SESSIONMAKERS: Dict[str, async_sessionmaker[AsyncSession]] = {}


def get_engine(database_url: str) -> AsyncEngine:
    """URL별로 메모이즈된 async 엔진을 반환."""
    engine = _ENGINES.get(database_url)
    if engine is None:
        engine = create_async_engine(database_url, future=True)
        _ENGINES[database_url] = engine
        _SESSIONMAKERS[database_url] = async_sessionmaker(
            bind=engine,
            expire_on_commit=False,
            autoflush=False,
        )
    return engine


def get_sessionmaker(database_url: str) -> async_sessionmaker[AsyncSession]:
    get_engine(database_url)
    return _SESSIONMAKERS[database_url]


@asynccontextmanager
async def session_scope(sessionmaker: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Provide a transactional scope for DB operations."""
    session = sessionmaker()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def init_schema(engine: AsyncEngine) -> None:
    """스키마 생성 (idempotent)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engines() -> None:
    for engine in list(_ENGINES.values()):
        await engine.dispose()
    _ENGINES.clear()
    _SESSIONMAKERS.clear()
