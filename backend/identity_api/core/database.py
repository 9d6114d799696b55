"""
Async database engine, session factory, and ORM base.

The engine and session factory are built once per application by
``create_app()`` and kept on ``app.state``; nothing here is a module-level
connection. Sessions are request-scoped via ``Depends(get_db)``.
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timezone

from fastapi import Request
from sqlalchemy import DateTime
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    # Stored timestamps are naive UTC on every backend.
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Shared declarative base for all models."""


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class SoftDeleteMixin(TimestampMixin):
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, index=True)


def create_engine_and_sessionmaker(
    url: str, echo: bool = False
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    # pool_pre_ping only makes sense for pooled network drivers
    kwargs = {} if url.startswith("sqlite") else {"pool_pre_ping": True}
    engine = create_async_engine(url, echo=echo, **kwargs)
    session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,  # avoid lazy-load issues after commit
    )
    return engine, session_factory


async def create_tables(engine: AsyncEngine) -> None:
    # Import for side effects: every model must be registered on Base.metadata.
    import identity_api.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a scoped async session for one request.

    Services commit their own units of work; this generator only
    guarantees cleanup on exit.
    """
    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with session_factory() as session:
        yield session
