"""Registry database: async engine for the API, sync sessions for Celery"""
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from typing import AsyncGenerator, Optional
import logging

from land_registry.config import settings

logger = logging.getLogger(__name__)


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DATABASE_ECHO,
    future=True,
)

# Routers commit explicitly; objects stay readable after the commit
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

_sync_session_maker: Optional[sessionmaker] = None


class Base(DeclarativeBase):
    """Declarative base shared by the registry models"""
    pass


def _log_rollback(error: Exception) -> None:
    if isinstance(error, IntegrityError):
        logger.warning(f"Registry write rejected by a database constraint: {error.orig}")
    elif isinstance(error, SQLAlchemyError):
        logger.error(f"Registry database error, rolling back: {error}")
    else:
        logger.error(f"Request failed with an open registry session, rolling back: {error!r}")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request.

    Whatever the endpoint left pending is committed on success. Any
    exception rolls the session back, is logged and propagates to the
    exception handlers.
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            _log_rollback(e)
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """Create any missing registry tables"""
    # Registers every model on Base.metadata
    import land_registry.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Registry tables ready")


async def close_db() -> None:
    await engine.dispose()


def sync_database_url(url: str) -> str:
    """Blocking driver URL for the same database"""
    return url.replace("+aiosqlite", "").replace("+asyncpg", "+psycopg2")


def get_sync_db() -> Session:
    """Session for Celery tasks, which run outside the event loop"""
    global _sync_session_maker
    if _sync_session_maker is None:
        sync_engine = create_engine(sync_database_url(settings.DATABASE_URL))
        _sync_session_maker = sessionmaker(bind=sync_engine, autocommit=False, autoflush=False)
    return _sync_session_maker()
