from collections.abc import AsyncGenerator
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from core.config import settings


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    # Naive UTC, so values compare the same after a round-trip through SQLite and Postgres
    return datetime.now(timezone.utc).replace(tzinfo=None)


engine = create_async_engine(settings.database_url, echo=settings.database_echo)
async_session_maker = async_sessionmaker(engine, expire_on_commit=False)


def _import_models() -> None:
    # Register every mapped table on Base.metadata
    from . import distribution, distribution_log, recipe, recipe_ingredient  # noqa: F401
    from .inventory import item, movement  # noqa: F401


async def create_db_and_tables(bind: AsyncEngine | None = None):
    _import_models()
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Dependency for handlers that run their own transactions through services.transactions."""
    return async_session_maker
