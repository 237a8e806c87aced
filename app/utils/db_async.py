"""Async SQLAlchemy engine and session factory.

Every session is created with ``expire_on_commit=False``. Services open
their own ``async with db.begin():`` blocks, so loaded rows stay readable
after the block commits.
"""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from app.config import settings
from app.utils.db_url import describe_database_url, load_table_models, prepare_asyncpg_connection

__all__ = [
    "DATABASE_URL",
    "SessionLocal",
    "describe_database_url",
    "dispose_engine",
    "engine",
    "get_session",
    "init_db",
]

DATABASE_URL, CONNECT_ARGS = prepare_asyncpg_connection(settings.database_url)

engine = create_async_engine(
    DATABASE_URL,
    echo=settings.sql_echo,
    pool_pre_ping=True,
    connect_args=CONNECT_ARGS,
)
SessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a request-scoped session."""
    async with SessionLocal() as session:
        yield session


async def init_db() -> None:
    """Create missing tables. Dev convenience; deployments run Alembic."""
    load_table_models()
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def dispose_engine() -> None:
    await engine.dispose()
