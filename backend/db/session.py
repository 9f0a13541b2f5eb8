"""Database engine and session configuration."""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.config import get_settings

settings = get_settings()


def create_db_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """Create the async SQLAlchemy engine.

    Pool tuning only applies to server databases; SQLite keeps the
    dialect's default pool.

    Args:
        database_url: Override for ``settings.DATABASE_URL``

    Returns:
        Async SQLAlchemy engine instance.
    """
    url = database_url or settings.DATABASE_URL
    kwargs = dict(echo=settings.SQLALCHEMY_ECHO, future=True)
    if not url.startswith("sqlite"):
        kwargs.update(
            pool_size=20,
            max_overflow=30,
            pool_recycle=1800,
            pool_pre_ping=True,
            pool_timeout=10,
        )
    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to ``engine``."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = create_db_engine()
AsyncSessionLocal = create_session_factory(engine)


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    """Create tables for all registered models."""
    from db.base import Base
    import db.models  # noqa: F401 registers the models

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
