"""
Database configuration and session management
"""

from typing import AsyncIterator

from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from restaurant_os.core.config import get_settings

settings = get_settings()

# Create async engine
async_engine = create_async_engine(
    settings.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://"),
    echo=settings.DEBUG,
    future=True,
)

# Create async session factory
async_session_maker = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncIterator[AsyncSession]:
    """Dependency to get database session"""
    async with async_session_maker() as session:
        yield session


def get_session_factory():
    """Dependency for jobs that open one session per unit of work"""
    return async_session_maker
