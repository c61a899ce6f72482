"""
Database access for the matching service.

One async engine serves the trip, load, suggestion and settings tables.
Production runs on PostgreSQL through asyncpg; the test suite swaps in
aiosqlite. Code that needs dialect-specific SQL, such as the suggestion
upsert, asks `dialect_name` which one it is talking to.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from loadmatch.app.core.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    future=True,
)

# Rows stay usable after commit; endpoints serialize them afterwards
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

Base = declarative_base()


async def get_db():
    """
    Request-scoped session.

    Anything left uncommitted when the request fails is rolled back.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def dialect_name(db: AsyncSession) -> str:
    """Name of the SQL dialect behind a session ("postgresql", "sqlite", ...)."""
    return db.get_bind().dialect.name
