"""Async engine, session factory and declarative base for the purchase-order store."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from kisheka.app.config import get_settings


class Base(DeclarativeBase):
    """Declarative base shared by the purchase-order, supplier and ledger models."""
    pass


settings = get_settings()

# aiosqlite connections are handed between threads by the event loop
_connect_args = {"check_same_thread": False} if "sqlite" in settings.database_url else {}

engine = create_async_engine(settings.database_url, connect_args=_connect_args)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db():
    """FastAPI dependency: one session per webhook request."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """Create missing tables on startup."""
    import kisheka.domain.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
