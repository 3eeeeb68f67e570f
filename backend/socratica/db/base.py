"""Database base class and session management.

This module provides:
- SQLAlchemy base class for declarative models
- Database engine and session factory
- A session context manager that reports store failures as PersistenceError
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from ..core.config import get_settings
from ..core.errors import PersistenceError


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


def utcnow_iso() -> str:
    """Naive-UTC ISO timestamp; stored timestamps compare lexicographically."""
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat()


_engine = None
_session_maker = None


def get_engine():
    """Get or create the database engine."""
    global _engine

    if _engine is None:
        settings = get_settings()
        engine_kwargs = {"echo": settings.DB_ECHO}
        if not settings.is_sqlite:
            engine_kwargs.update(
                pool_size=settings.DB_POOL_SIZE,
                max_overflow=settings.DB_MAX_OVERFLOW,
                pool_timeout=settings.DB_POOL_TIMEOUT,
            )
        _engine = create_async_engine(settings.DATABASE_URL, **engine_kwargs)

    return _engine


def get_session_maker():
    """Get or create the session maker."""
    global _session_maker

    if _session_maker is None:
        _session_maker = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )

    return _session_maker


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session as an async context manager.

    SQLAlchemy errors escaping the block are rolled back and re-raised as
    PersistenceError.
    """
    session_maker = get_session_maker()
    async with session_maker() as session:
        try:
            yield session
        except SQLAlchemyError as exc:
            await session.rollback()
            raise PersistenceError(f"Database operation failed: {exc.__class__.__name__}") from exc


async def init_databases():
    """Create all tables."""
    from . import models  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_all():
    """Close all database connections."""
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None


async def insert_or_fetch(session: AsyncSession, obj, lookup_stmt):
    """Insert ``obj`` or return the row a unique index says already exists.

    Returns ``(row, created)``. A concurrent insert that wins the race
    surfaces as IntegrityError here and resolves to the winner's row. Any
    instance loaded earlier in ``session`` is expired on that path.
    """
    existing = (await session.execute(lookup_stmt)).scalar_one_or_none()
    if existing is not None:
        return existing, False

    session.add(obj)
    try:
        await session.commit()
        return obj, True
    except IntegrityError:
        await session.rollback()

    existing = (await session.execute(lookup_stmt)).scalar_one_or_none()
    if existing is None:
        raise PersistenceError("Insert conflicted but no existing row was found")
    return existing, False
