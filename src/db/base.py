import asyncio
import os
import sys

from loguru import logger
from sqlalchemy import MetaData, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.core.config import get_settings

settings = get_settings()

# Check if we're in production
IS_PRODUCTION = os.environ.get("APP_ENV") == "production"

DEFAULT_SQLITE_URL = "sqlite+aiosqlite:///./friendfind.db"


def process_database_url(url):
    """Normalize a DATABASE_URL into an async driver URL."""
    if not url:
        # In production, never fall back to SQLite
        if IS_PRODUCTION:
            logger.error("No database URL provided in production environment!")
            sys.exit(1)
        logger.warning("No database URL provided, falling back to SQLite")
        return DEFAULT_SQLITE_URL

    logger.info(f"Processing database URL (starts with): {url[:15]}...")

    if url.startswith('sqlite'):
        if IS_PRODUCTION:
            logger.error("SQLite database not allowed in production environment!")
            sys.exit(1)
        if '+aiosqlite' not in url:
            url = url.replace('sqlite:', 'sqlite+aiosqlite:', 1)
        return url

    # For asyncpg, we need to use postgresql+asyncpg://
    if url.startswith('postgres://') or url.startswith('postgresql://'):
        if 'asyncpg' not in url:
            if url.startswith('postgres://'):
                url = url.replace('postgres://', 'postgresql+asyncpg://', 1)
            else:
                url = url.replace('postgresql://', 'postgresql+asyncpg://', 1)
        logger.info(f"Processed database URL (starts with): {url[:15]}...")
        return url

    logger.warning(f"Unrecognized database URL format: {url[:10]}...")
    if IS_PRODUCTION:
        logger.error("DATABASE_URL must be a PostgreSQL connection in production.")
        sys.exit(1)
    return url


# Naming convention for constraints
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)


class Base(DeclarativeBase):
    """Base class for all models."""
    metadata = metadata


def create_engine_for_url(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine with driver-specific pool settings."""
    url = process_database_url(url)
    logger.info(f"Using database driver: {url.split('://')[0]}")

    if 'postgresql' in url:
        return create_async_engine(
            url,
            echo=echo,
            pool_pre_ping=True,               # Verify connections before using them
            pool_recycle=60,
            pool_timeout=120,
            pool_size=5,
            max_overflow=10,
            pool_use_lifo=True,
            connect_args={
                "timeout": 60,
                "command_timeout": 60,
                "server_settings": {"application_name": "friendfind"},
                "statement_cache_size": 0,
            },
        )

    # SQLite: let writers wait on the file lock instead of failing immediately
    return create_async_engine(url, echo=echo, connect_args={"timeout": 30})


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create an async session factory bound to `engine`."""
    return async_sessionmaker(
        engine,
        expire_on_commit=False,
        class_=AsyncSession,
    )


SQLALCHEMY_DATABASE_URL = process_database_url(os.getenv('DATABASE_URL', settings.db_url))

engine = create_engine_for_url(SQLALCHEMY_DATABASE_URL, echo=settings.debug)

async_session_factory = create_session_factory(engine)


def get_engine():
    """Get the SQLAlchemy engine."""
    return engine


async def init_models(engine: AsyncEngine, max_retries: int = 5) -> MetaData:
    """Create all tables, retrying while the database comes up."""
    logger.info(f"Initializing database models with engine {engine.url.drivername}...")
    # Make sure every model is registered on the metadata
    import src.db.models  # noqa: F401

    retry_delay = 1  # seconds
    for attempt in range(max_retries):
        try:
            async with engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database models initialized successfully")
            return Base.metadata
        except SQLAlchemyError as e:
            if attempt < max_retries - 1:
                logger.warning(f"Database init failed (attempt {attempt + 1}/{max_retries}): {e}")
                await asyncio.sleep(retry_delay)
                retry_delay *= 2  # Exponential backoff
            else:
                logger.error(f"Database initialization failed after {max_retries} attempts: {e}")
                raise
