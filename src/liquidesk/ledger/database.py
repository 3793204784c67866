"""Database connection and session management."""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from liquidesk.config import get_settings
from liquidesk.ledger.models import Base

# Global engine and session factory
_engine = None
_session_factory = None


def get_engine():
    """Get or create the database engine."""
    global _engine
    if _engine is None:
        settings = get_settings()
        # Convert sqlite:/// to sqlite+aiosqlite:/// if needed
        db_url = settings.database_url
        if db_url.startswith("sqlite:///") and "aiosqlite" not in db_url:
            db_url = db_url.replace("sqlite:///", "sqlite+aiosqlite:///")

        # SQLite will not create the parent directory of its file
        if db_url.startswith("sqlite+aiosqlite:///") and ":memory:" not in db_url:
            Path(db_url.split(":///", 1)[1]).parent.mkdir(parents=True, exist_ok=True)

        _engine = create_async_engine(
            db_url,
            echo=settings.debug and not settings.is_production,
            future=True,
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


@asynccontextmanager
async def get_db(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Get a database session context manager.

    Commits when the block exits cleanly, rolls back and re-raises otherwise.
    """
    factory = session_factory or get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Initialize the database by creating all tables."""
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
