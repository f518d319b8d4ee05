"""
Relational store connection management.

The engine is a long-lived pooled handle created once at startup and passed
to the components that need it.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def create_engine(database_url: str, pool_size: int = 20, pool_timeout: float = 2.0) -> AsyncEngine:
    """Create the pooled async engine for the catalog database."""
    return create_async_engine(
        database_url,
        echo=False,
        pool_size=pool_size,
        pool_timeout=pool_timeout,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory bound to the engine; sessions never expire loaded rows."""
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


async def init_db(engine: AsyncEngine) -> None:
    """Enable PostGIS and create all tables."""
    async with engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS postgis"))
        await conn.run_sync(Base.metadata.create_all)
