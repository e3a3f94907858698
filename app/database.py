"""
Database Connection Module
Handles the PostgreSQL connection using the SQLAlchemy async engine.
"""

import logging
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from app.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

engine_options = {"echo": settings.database_echo}
if not settings.database_url.startswith("sqlite"):
    engine_options.update(pool_size=5, max_overflow=10)

# Create async engine
engine = create_async_engine(settings.database_url, **engine_options)

# Session factory - creates new database sessions
async_session_maker = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False  # Objects remain accessible after commit
)


# Base class for all our models
class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncSession:
    """
    Dependency injection for FastAPI routes.
    Yields a database session and ensures cleanup.
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """
    Create all tables in database.
    Called once at application startup.
    """
    # Models must be imported so their tables are registered on Base.metadata
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created successfully")


@asynccontextmanager
async def transaction(session: AsyncSession):
    """
    Commit everything written inside the block, or roll all of it back.

    Multi-row writes (order + items + assignments, delivery + settlements +
    wallet) go through here so a failure never leaves half of them behind.
    """
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
