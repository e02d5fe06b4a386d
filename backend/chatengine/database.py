"""Database connection and session management."""
from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from .config import get_settings

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (the test-suite runs on SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")

engine = create_async_engine(
    get_settings().database_url,
    echo=False,
    future=True,
)
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def init_db():
    """Create all tables. Run once at startup or via migration."""
    from . import models  # noqa: F401  registers the mappers on Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
