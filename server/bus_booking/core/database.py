"""Engine, session factory and declarative base for the booking store."""

from typing import Any, AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from .config import settings

Base = declarative_base()


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for ``database_url``.

    SQLite runs on one shared connection so an in-memory database lives as
    long as the engine. PostgreSQL gets a pre-pinged connection pool.
    """
    options: dict[str, Any] = {"echo": echo}
    if make_url(database_url).get_backend_name() == "sqlite":
        options["poolclass"] = StaticPool
        options["connect_args"] = {"check_same_thread": False}
    else:
        options["pool_pre_ping"] = True
    return create_async_engine(database_url, **options)


def supports_advisory_locks(session: AsyncSession) -> bool:
    """Whether the session's database offers transaction-scoped advisory locks."""
    return session.bind is not None and session.bind.dialect.name == "postgresql"


engine = build_engine(settings.database_url, echo=settings.debug)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a request-scoped session.

    Work left uncommitted when the request fails is rolled back.
    """
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create missing tables; migrations remain the source of truth in production."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
