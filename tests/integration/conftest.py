"""Pytest fixtures aligned with the live Postgres stack."""

import os
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio

from httpx import AsyncClient, ASGITransport
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from app.schemas.base import Sport
from app.schemas.candidates import Candidate
from app.schemas.news_items import NewsItem, NewsItemType
from app.schemas.query_definitions import QueryDefinition
from app.schemas.query_runs import QueryRun, QueryRunStatus
from app.schemas.sources import Source, SourceType
from app.schemas.youtube_videos import YouTubeVideo
from app.services.sources.base import utcnow
from app.utils.db_url import load_table_models, prepare_asyncpg_connection


def _load_database_url() -> str:
    """Resolve the database URL for tests, enforcing an explicit opt-in."""
    test_db_url = os.getenv("TEST_DATABASE_URL")
    pytest_allow_db = int(os.getenv("PYTEST_ALLOW_DB", "0"))
    if not test_db_url:
        pytest.skip("No TEST_DATABASE_URL is configured for tests.")
    if pytest_allow_db != 1:
        raise RuntimeError(
            "Running integration tests requires setting PYTEST_ALLOW_DB=1 to"
            " confirm the configured database is safe to mutate."
        )
    # mypy: test_db_url is str after the guard above
    return test_db_url  # type: ignore[return-value]


@pytest.fixture(scope="session")
def database_url() -> str:
    """Return the Postgres URL the test suite should target."""
    return _load_database_url()


@pytest_asyncio.fixture(scope="session")
async def async_engine(database_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Yield an async engine bound to the integration-test database."""
    load_table_models()
    url, connect_args = prepare_asyncpg_connection(database_url)
    engine = create_async_engine(url, echo=False, pool_pre_ping=True, connect_args=connect_args)
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
        await conn.run_sync(SQLModel.metadata.create_all)
    try:
        yield engine
    finally:
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.drop_all)
        await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(async_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a clean transactional session for each test without per-test DDL."""
    async with async_engine.connect() as connection:
        # Wrap each test in a transaction; roll back afterwards to keep a pristine schema.
        trans = await connection.begin()
        # Every session.begin() becomes a savepoint inside the outer transaction.
        session_factory = async_sessionmaker(
            bind=connection,
            expire_on_commit=False,
            class_=AsyncSession,
            join_transaction_mode="create_savepoint",
        )
        session = session_factory()
        try:
            yield session
        finally:
            await session.close()
            await trans.rollback()


@pytest.fixture
def session_factory(db_session: AsyncSession):
    """Stand-in for ``SessionLocal`` that hands workers the test session."""

    class _SessionContext:
        async def __aenter__(self) -> AsyncSession:
            return db_session

        async def __aexit__(self, *exc_info) -> None:
            return None

    return lambda: _SessionContext()


@pytest.fixture
def org_id() -> str:
    from app.config import settings

    return settings.default_org_id


@pytest_asyncio.fixture()
async def app_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Provide an HTTP client with the application wired to the test session."""
    try:
        from app.main import app
    except ValidationError as exc:  # pragma: no cover - guard for misconfigured env
        pytest.skip(f"App configuration failed: {exc}")

    from app.utils.db_async import get_session

    async def _get_session_override() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_session] = _get_session_override
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.pop(get_session, None)


def make_source(org_id: str, name: str = "ESPN NFL", **overrides) -> Source:
    values = {
        "org_id": org_id,
        "name": name,
        "type": SourceType.RSS_FEED,
        "sport": Sport.NFL,
        "config": {"feedUrl": "https://example.com/feed.xml"},
    }
    values.update(overrides)
    return Source(**values)


def make_news_item(org_id: str, source_id: int, external_id: str, **overrides) -> NewsItem:
    values = {
        "org_id": org_id,
        "source_id": source_id,
        "external_id": external_id,
        "type": NewsItemType.ANALYSIS,
        "sport": Sport.NFL,
        "headline": f"Headline {external_id}",
        "published_at": utcnow(),
    }
    values.update(overrides)
    return NewsItem(**values)


def make_query(org_id: str, name: str = "Chiefs highlights", **overrides) -> QueryDefinition:
    values = {
        "org_id": org_id,
        "name": name,
        "sport": Sport.NFL,
        "keywords": ["Chiefs", "Mahomes"],
    }
    values.update(overrides)
    return QueryDefinition(**values)


def make_video(org_id: str, youtube_video_id: str, **overrides) -> YouTubeVideo:
    values = {
        "org_id": org_id,
        "youtube_video_id": youtube_video_id,
        "title": f"Video {youtube_video_id}",
        "channel_id": "UC-nfl",
        "channel_title": "NFL",
        "published_at": utcnow(),
    }
    values.update(overrides)
    return YouTubeVideo(**values)


async def add_rows(db: AsyncSession, *rows):
    """Persist rows in their own transaction so ids are assigned."""
    async with db.begin():
        db.add_all(rows)
    return rows


async def seed_candidate(
    db: AsyncSession,
    org_id: str,
    youtube_video_id: str,
    *,
    relevance_score: float = 0.8,
    entities: Optional[dict] = None,
    video_overrides: Optional[dict] = None,
    query_overrides: Optional[dict] = None,
) -> Candidate:
    """Insert a query, run, video and candidate chain."""
    (query,) = await add_rows(db, make_query(org_id, **(query_overrides or {})))
    video = make_video(org_id, youtube_video_id, **(video_overrides or {}))
    run = QueryRun(
        org_id=org_id,
        query_definition_id=query.id,  # type: ignore[arg-type]
        status=QueryRunStatus.SUCCEEDED,
    )
    await add_rows(db, video, run)
    (candidate,) = await add_rows(
        db,
        Candidate(
            org_id=org_id,
            video_id=video.id,  # type: ignore[arg-type]
            query_run_id=run.id,  # type: ignore[arg-type]
            query_definition_id=query.id,  # type: ignore[arg-type]
            relevance_score=relevance_score,
            entities=entities or {"people": [], "teams": [], "events": [], "topics": []},
        ),
    )
    return candidate
