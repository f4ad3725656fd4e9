from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from seatlock.config import settings
from seatlock.db.base import Base


def make_engine(url: str) -> AsyncEngine:
    options = {"echo": settings.DEBUG}
    if not url.startswith("sqlite"):
        options["pool_pre_ping"] = True
    return create_async_engine(url, **options)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    # responses are built from rows after commit
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)


async def create_schema(bind: AsyncEngine):
    """Create every table directly. Deployments use the alembic migration instead."""
    import seatlock.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


engine = make_engine(str(settings.DATABASE_URL))
async_session = make_session_factory(engine)


async def get_session() -> AsyncIterator[AsyncSession]:  # to be used as dependency
    async with async_session() as session:
        yield session
