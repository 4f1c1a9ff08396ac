"""Database connections for the appointment store."""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from appointment_engine.config import settings


class Base(DeclarativeBase):
    pass


def _engine_options() -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": False, "future": True}
    if settings.is_sqlite:
        # aiosqlite connections are bound to the loop that opened them.
        options["poolclass"] = NullPool
        options["connect_args"] = {"timeout": 15}
    return options


engine = create_async_engine(settings.database_url, **_engine_options())


async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


def _create_all(connection) -> None:
    # Import models so every table is registered on the metadata.
    import appointment_engine.models  # noqa: F401

    Base.metadata.create_all(connection)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(_create_all)


async def drop_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@asynccontextmanager
async def lifespan_db():
    await init_db()
    yield
    await engine.dispose()
