"""
Utilities for database session management and retry logic.
"""
import asyncio
import functools
import random
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, TypeVar

from loguru import logger
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.errors import TransientIO

T = TypeVar('T')


@asynccontextmanager
async def transaction(session_factory: async_sessionmaker) -> AsyncIterator[AsyncSession]:
    """
    Open a session and a transaction that commits on success and rolls back on error.

    Args:
        session_factory: Factory producing AsyncSession objects

    Yields:
        The session, inside an open transaction
    """
    async with session_factory() as session:
        async with session.begin():
            yield session


def _is_transient(error: Exception) -> bool:
    if isinstance(error, OperationalError):
        return True
    return isinstance(error, DBAPIError) and error.connection_invalidated


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 0.05,
    max_delay: float = 2.0
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Decorator to retry async database operations with exponential backoff.

    The decorated coroutine must open its own session, so every attempt runs
    in a fresh transaction. When all attempts fail the last driver error is
    re-raised as TransientIO.

    Args:
        max_attempts: Maximum number of attempts
        base_delay: Base delay between retries in seconds
        max_delay: Maximum delay between retries in seconds

    Returns:
        Decorated function with retry logic
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except (OperationalError, DBAPIError) as e:
                    if not _is_transient(e):
                        raise
                    if attempt == max_attempts:
                        logger.error(f"{func.__qualname__} failed after {max_attempts} attempts: {e}")
                        raise TransientIO(f"{func.__qualname__}: storage unavailable") from e

                    delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
                    # Add some jitter (±10%)
                    delay += 0.1 * delay * (2 * random.random() - 1)
                    logger.warning(
                        f"{func.__qualname__} failed (attempt {attempt}/{max_attempts}): {e}. "
                        f"Retrying in {delay:.2f}s"
                    )
                    await asyncio.sleep(delay)
            raise RuntimeError("Unexpected error in retry logic")

        return wrapper
    return decorator
