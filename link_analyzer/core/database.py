from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import declarative_base

from link_analyzer.core.config import settings
from link_analyzer.core.logging import get_logger

logger = get_logger(__name__)

# Create base class for declarative models
Base = declarative_base()


def build_engine(database_url: str) -> AsyncEngine:
    """Create an async engine with pool options suited to the backend."""
    # SQLite doesn't support pool_size and max_overflow
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=False)
    return create_async_engine(
        database_url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


engine = build_engine(settings.database_url)


async def init_db(bind: AsyncEngine = None) -> None:
    """Initialize database tables."""
    # Register the models on Base.metadata
    from link_analyzer.models import db_models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
    logger.info("Database connections closed")


class DatabaseManager:
    """Manager for database operations."""

    def __init__(self, bind: AsyncEngine = None):
        self.engine = bind or engine

    async def health_check(self) -> bool:
        """Check database connectivity."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False
