"""SQLAlchemy async engine, session, and dependency."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from bookshelf.config import get_settings


settings = get_settings()


def _build_engine(dsn: str) -> AsyncEngine:
    # SQLite (tests, local runs) does not take pool sizing arguments.
    if dsn.startswith("sqlite"):
        return create_async_engine(dsn, poolclass=NullPool, echo=False)
    return create_async_engine(
        dsn,
        pool_size=20,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=300,
        echo=False,
    )


engine = _build_engine(settings.database_dsn)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def isolated_session() -> AsyncGenerator[AsyncSession, None]:
    """Session on a throwaway engine, for code running under its own event loop.

    Celery tasks call ``asyncio.run`` per invocation; pooled connections from
    the module-level engine are bound to the API's loop and cannot be reused.
    """
    worker_engine = create_async_engine(settings.database_dsn, poolclass=NullPool)
    try:
        factory = async_sessionmaker(worker_engine, class_=AsyncSession, expire_on_commit=False)
        async with factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
    finally:
        await worker_engine.dispose()
