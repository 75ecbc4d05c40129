"""Database engine, session factory and declarative base."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from gradewise_api.config import settings


class Base(DeclarativeBase):
    """Declarative base for all models."""


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DATABASE_ECHO,
    pool_pre_ping=True,
)

async_session_maker = make_session_factory(engine)


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session, committed on success.

    Uses ``app.state.session_factory`` when the app was built with one.
    """
    factory = getattr(request.app.state, "session_factory", None) or async_session_maker
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_db_context(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Session context manager for code running outside a request."""
    factory = session_factory or async_session_maker
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(target: AsyncEngine | None = None) -> None:
    """Create all tables. Used by tests and local development."""
    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
