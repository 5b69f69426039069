from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from api.src.config import get_settings
from controller.src.models.db import Base

settings = get_settings()

def async_database_url(url: str) -> str:
    """Convert a sync URL to its async driver, e.g. postgresql:// to postgresql+asyncpg://."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url

engine = create_async_engine(async_database_url(settings.database_url))

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

async def get_db():
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()

async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
