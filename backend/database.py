# database.py - Async database setup
import os
import logging
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

logger = logging.getLogger("taskboard.database")

# Database configuration
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./taskboard.db")


def _engine_options(url: str) -> dict:
    options = {
        "echo": os.getenv("SQL_ECHO", "false").lower() == "true",
        "future": True,
        "pool_pre_ping": True,
    }
    if url.startswith("sqlite"):
        # File connections are cheap; no pooled connection outlives its event loop
        options.update(connect_args={"check_same_thread": False}, poolclass=NullPool)
    else:
        options.update(pool_size=20, max_overflow=0, pool_recycle=3600)
    return options


# Create async engine with connection pooling
engine = create_async_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

# Create async session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
    autocommit=False,
)


async def get_db_session():
    """Dependency for getting database session (FastAPI Depends)"""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """Initialize database and create tables"""
    from models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database initialized (%s)", engine.url.get_backend_name())


async def close_db():
    """Close database connection pool"""
    await engine.dispose()


async def ping_db() -> str:
    """Round-trip a trivial query; returns "connected" or a short error"""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return "connected"
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Database probe failed: %s", e)
        return f"error: {str(e)[:100]}"
