import asyncio
import logging
from typing import AsyncGenerator, Awaitable, Callable, Optional, TypeVar

from fastapi import status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from app.core.config import settings
from app.core.exceptions import ConflictError, ServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# pool_pre_ping: check connection is alive before use (avoids "connection is closed" errors
# when DB or network closed idle connections).
# pool_recycle: discard connections after this many seconds to avoid stale connections.
engine = create_async_engine(
    settings.database_url,
    echo=False,
    future=True,
    pool_pre_ping=True,
    pool_recycle=300,
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


async def init_models() -> None:
    """Create missing tables. Only used when AUTO_CREATE_TABLES is set."""
    # Import models so every table is registered on Base.metadata.
    import app.auth.models  # noqa: F401
    import app.core.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def run_with_timeout(
    db: AsyncSession,
    operation: Awaitable[T],
    timeout: Optional[float] = None,
) -> T:
    """Await a service call; on timeout roll the whole transaction back."""
    limit = timeout if timeout is not None else settings.db_operation_timeout_seconds
    try:
        return await asyncio.wait_for(operation, limit)
    except asyncio.TimeoutError:
        logger.error("Store operation exceeded %.1fs, rolling back", limit)
        await db.rollback()
        raise ServiceError("The operation timed out and was rolled back", status.HTTP_504_GATEWAY_TIMEOUT)


async def retry_once_on_conflict(operation: Callable[[], Awaitable[T]]) -> T:
    """Run operation; if it loses a uniqueness race, run it exactly once more.

    The second attempt re-reads state, so a genuine duplicate still surfaces
    as ConflictError.
    """
    try:
        return await operation()
    except ConflictError as exc:
        logger.info("Conflict on first attempt (%s), retrying once", exc.message)
        return await operation()
