"""Async SQLAlchemy engine and session factory.

SQLAlchemy 2.0 async mode: create_async_engine for connection pooling,
AsyncSession for per-request database access, dependency injection via
FastAPI. The engine is built in the app lifespan and kept on app.state.
"""

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from pulsefeed.db.models import Base


def build_engine(url: str, *, echo: bool = False) -> AsyncEngine:
    """Create the engine. Postgres gets a pool of min 5, max 20 connections."""
    kwargs = {}
    if url.startswith("postgresql"):
        kwargs.update(pool_size=5, max_overflow=15)
    return create_async_engine(url, echo=echo, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create missing tables (CREATE TABLE IF NOT EXISTS)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db(request: Request) -> AsyncSession:
    """FastAPI dependency: yields a session per request, auto-closes."""
    async with request.app.state.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
