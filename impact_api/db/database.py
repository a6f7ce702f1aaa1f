"""
Database configuration and connection management
"""

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy import MetaData
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import structlog

from impact_api.core.config import settings

logger = structlog.get_logger()


def _engine_options(database_url: str) -> dict:
    options = {
        "echo": settings.DATABASE_ECHO,
        "future": True,
        "pool_pre_ping": True,
    }
    if not database_url.startswith("sqlite"):
        # Ledger deltas rely on row locks; never run below read committed
        options.update(
            isolation_level="READ COMMITTED",
            pool_recycle=300,
            pool_size=5,
            max_overflow=5,
            pool_timeout=30,
        )
    return options


engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

# Declarative base with naming convention for constraints
metadata = MetaData(naming_convention={
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
})

Base = declarative_base(metadata=metadata)


async def create_tables():
    """
    Create all tables when AUTO_CREATE_TABLES is set.

    Regular deployments manage the schema with Alembic
    (``alembic upgrade head``); this is meant for local development.
    """
    # Import models so they register with the metadata
    from impact_api import models  # noqa: F401

    if not settings.AUTO_CREATE_TABLES:
        logger.info("Database table creation skipped - using Alembic migrations")
        return

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created", tables=len(Base.metadata.tables))


async def drop_tables():
    """Drop all database tables (use with caution!)"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        logger.warning("All database tables dropped")


async def get_db():
    """Database session dependency for FastAPI"""
    async with async_session_factory() as session:
        try:
            yield session
        except Exception as e:
            await session.rollback()
            logger.error("Database session error", error=str(e))
            raise
        finally:
            await session.close()


@asynccontextmanager
async def get_db_session():
    """Session context manager for scripts and maintenance tasks"""
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def utcnow() -> datetime:
    """Timezone-aware timestamp used as the Python-side column default"""
    return datetime.now(timezone.utc)
