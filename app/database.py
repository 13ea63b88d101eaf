import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from app.config import settings


logger = logging.getLogger(__name__)


# Convert database URL for proper driver
database_url = settings.DATABASE_URL
if database_url.startswith("postgresql+asyncpg://"):
    # Switch to psycopg for async PostgreSQL
    database_url = database_url.replace("postgresql+asyncpg://", "postgresql+psycopg://")
elif database_url.startswith("postgresql://"):
    database_url = database_url.replace("postgresql://", "postgresql+psycopg://")

# SQLite doesn't support pool settings
if settings.is_sqlite:
    engine = create_async_engine(
        database_url,
        echo=settings.DEBUG,
        connect_args={"check_same_thread": False},
    )
else:
    engine = create_async_engine(
        database_url,
        echo=settings.DEBUG,
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
    )

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency to get database session.

    One session is one ledger transaction: it commits when the endpoint
    returns and rolls back every write if anything raised.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def get_db_session():
    """Context manager for a session outside the request transaction (failure audits, startup)."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Initialize database tables."""
    # Import all models to register them with Base.metadata
    from app import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Registered %d tables", len(Base.metadata.tables))


async def seed_owner() -> None:
    """Create the first owner account when the users table is empty."""
    if not settings.INITIAL_OWNER_USERNAME or not settings.INITIAL_OWNER_PASSWORD:
        return

    from sqlalchemy import select, func
    from app.models.user import User, UserRole
    from app.core.security import get_password_hash

    async with get_db_session() as session:
        user_count = await session.scalar(select(func.count(User.id)))
        if user_count:
            logger.info("Found %d existing users. Skipping owner seed.", user_count)
            return

        session.add(User(
            username=settings.INITIAL_OWNER_USERNAME,
            full_name="Owner",
            password_hash=get_password_hash(settings.INITIAL_OWNER_PASSWORD),
            role=UserRole.OWNER.value,
            is_active=True,
        ))
        logger.info("Created owner account: %s", settings.INITIAL_OWNER_USERNAME)
