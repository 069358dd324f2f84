"""Database engine, session factory and declarative base."""

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from wa_mailbox.settings import get_async_database_url

async_database_url = get_async_database_url()

if async_database_url.startswith("sqlite"):
    engine_options: dict = {"connect_args": {"check_same_thread": False}}
else:
    # Managed Postgres drops idle connections
    engine_options = {"pool_pre_ping": True, "pool_size": 10, "max_overflow": 20}

engine = create_async_engine(async_database_url, echo=False, **engine_options)

# Objects stay usable after commit; webhook processing reads them across several commits
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


async def get_db() -> AsyncIterator[AsyncSession]:
    """Request-scoped session; uncommitted work is rolled back on error."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
