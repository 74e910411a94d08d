import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, AsyncIterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from musicshop.core.config import settings
from musicshop.core.exceptions import ConflictError, UnavailableError

logger = logging.getLogger(__name__)


def engine_options(database_url: str, echo: bool = False) -> dict[str, Any]:
    """Build engine keyword arguments for the given database URL.

    Pool tuning and asyncpg connect args only make sense for PostgreSQL;
    other drivers (aiosqlite in tests) keep SQLAlchemy defaults.
    """
    options: dict[str, Any] = {"echo": echo}
    if database_url.startswith("postgresql"):
        options.update(
            pool_size=10,
            max_overflow=10,
            pool_timeout=30,
            pool_recycle=180,      # Connection recycling for freshness
            pool_pre_ping=True,    # Verify connection health before use
            # PgBouncer transaction mode requires disabling prepared statement cache
            connect_args={
                "prepared_statement_cache_size": 0,
                "command_timeout": 30,
            },
        )
    return options


engine = create_async_engine(
    settings.DATABASE_URL,
    **engine_options(settings.DATABASE_URL, echo=settings.DEBUG),
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def unit_of_work(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Commit the session when the block succeeds, roll it back otherwise.

    Constraint violations surface as ConflictError and other storage failures
    as UnavailableError; domain errors raised inside the block pass through.
    """
    try:
        yield session
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        logger.warning(f"Integrity violation, rolled back: {e.orig}")
        raise ConflictError("Conflicting change, refresh and retry") from e
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("Storage failure, rolled back", exc_info=True)
        raise UnavailableError("Storage is temporarily unavailable") from e
    except Exception:
        await session.rollback()
        raise
