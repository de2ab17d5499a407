"""Async engine and session factory."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from inbox_rag.storage.tables import Base


def create_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Create the async engine. ``pool_pre_ping`` drops stale connections early."""
    return create_async_engine(database_url, echo=echo, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Sessions with ``expire_on_commit=False`` so rows stay readable after commit."""
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create any missing tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
