"""
Database session configuration.

Builds the async SQLAlchemy engine for the notification store. PostgreSQL
(asyncpg) is the production target; SQLite (aiosqlite) URLs are accepted
for local development and tests.
"""

from typing import Any, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from backend.app.core.config import settings


def engine_options(database_url: str) -> Dict[str, Any]:
    """Return create_async_engine kwargs suitable for the given backend."""
    options: Dict[str, Any] = {"echo": settings.db_echo, "future": True}
    if make_url(database_url).get_backend_name() == "sqlite":
        # SQLite pools do not accept sizing arguments
        options["connect_args"] = {"check_same_thread": False}
    else:
        options["pool_size"] = settings.db_pool_size
        options["max_overflow"] = settings.db_max_overflow
        options["pool_pre_ping"] = True
    return options


engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


async def get_db():
    """
    FastAPI dependency for database sessions.

    Yields an async session; uncommitted work is rolled back on close.
    """
    async with AsyncSessionLocal() as session:
        yield session
