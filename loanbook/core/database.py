from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from redis import asyncio as aioredis
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator
import logging

from loanbook.core.config import settings
from loanbook.core.exceptions import LedgerError, StorageFailure

logger = logging.getLogger(__name__)

engine_options = {
    "echo": settings.DEBUG,
    "future": True,
    "pool_pre_ping": True,
}
if not settings.is_sqlite:
    engine_options.update(
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
    )

# Async Engine
async_engine = create_async_engine(settings.DATABASE_URL, **engine_options)

# Async Session Factory
AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False
)

Base = declarative_base()

# Redis connection pool
redis_pool = None


async def get_redis() -> aioredis.Redis:
    """Get Redis connection"""
    global redis_pool
    if redis_pool is None:
        redis_pool = await aioredis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            max_connections=10
        )
    return redis_pool


async def close_redis():
    """Close Redis connection"""
    global redis_pool
    if redis_pool:
        await redis_pool.close()
        redis_pool = None


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get async database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def atomic(db: AsyncSession, operation: str) -> AsyncIterator[AsyncSession]:
    """
    Run a block of work as one database transaction.

    Commits when the block exits cleanly. On any error the session is rolled
    back: ledger errors propagate unchanged, database errors are wrapped in
    StorageFailure.
    """
    try:
        yield db
        await db.commit()
    except LedgerError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception(f"Storage failure during {operation}")
        raise StorageFailure(f"Could not complete {operation}") from e
    except Exception:
        await db.rollback()
        raise
