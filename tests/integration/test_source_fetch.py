"""Integration tests for fetch-run execution and manual triggers."""

import asyncio
from datetime import timedelta
from typing import Any, Optional

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import CooldownError, EnqueueError, FetchError
from app.schemas.news_items import NewsItem, NewsItemType
from app.schemas.source_fetch_runs import FetchRunStatus, SourceFetchRun
from app.schemas.sources import Source, SourceStatus, SourceType
from app.services.job_queue import IMPORTANCE_SCORE, SOURCE_FETCH, JobQueue
from app.services.source_fetch_service import (
    get_source_health,
    persist_news_items,
    process_source_fetch,
    snapshot_source,
    trigger_source_fetch,
)
from app.services.sources import registry
from app.services.sources.base import (
    BaseSourceAdapter,
    FetchOptions,
    FetchResult,
    RawNewsItem,
    SourceSnapshot,
    ValidationResult,
    utcnow,
)
from tests.integration.conftest import add_rows, make_source


def _raw(external_id: str, headline: str = "Chiefs sign veteran kicker") -> RawNewsItem:
    return RawNewsItem(
        external_id=external_id,
        type=NewsItemType.ANALYSIS,
        headline=headline,
        published_at=utcnow() - timedelta(hours=1),
    )


class FakeAdapter(BaseSourceAdapter):
    type = SourceType.RSS_FEED
    name = "Fake Feed"

    def __init__(self, items: list[RawNewsItem], error: Optional[BaseException] = None) -> None:
        super().__init__()
        self.items = items
        self.error = error
        self.calls = 0

    async def fetch(
        self, source: SourceSnapshot, options: Optional[FetchOptions] = None
    ) -> FetchResult:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return FetchResult(items=list(self.items))

    def validate_config(self, config: Any) -> ValidationResult:
        return ValidationResult(valid=True)


async def _noop(payload: dict[str, Any]) -> None:
    return None


def _queue(*channels: str) -> JobQueue:
    queue = JobQueue(max_attempts=1, backoff_seconds=0)
    for channel in channels:
        queue.register(channel, _noop)
    return queue


async def _new_run(db: AsyncSession, source_id: int) -> int:
    (run,) = await add_rows(db, SourceFetchRun(source_id=source_id))
    assert run.id is not None
    return run.id


async def _reload(db: AsyncSession, model, pk: int):
    async with db.begin():
        return await db.get(model, pk, populate_existing=True)


class TestPersistNewsItems:
    """Persisting news items dedupes per source."""

    @pytest.mark.asyncio
    async def test_second_insert_of_same_items_is_noop(
        self, db_session: AsyncSession, org_id: str
    ) -> None:
        (source,) = await add_rows(db_session, make_source(org_id))
        snapshot = snapshot_source(source)

        first = await persist_news_items(db_session, snapshot, [_raw("a"), _raw("b"), _raw("a")])
        second = await persist_news_items(db_session, snapshot, [_raw("a"), _raw("b")])

        assert len(first) == 2
        assert second == []
        async with db_session.begin():
            count = await db_session.scalar(
                select(func.count()).select_from(NewsItem).where(NewsItem.source_id == source.id)
            )
        assert count == 2

    @pytest.mark.asyncio
    async def test_same_external_id_allowed_across_sources(
        self, db_session: AsyncSession, org_id: str
    ) -> None:
        one, two = await add_rows(
            db_session, make_source(org_id, "Feed One"), make_source(org_id, "Feed Two")
        )

        assert await persist_news_items(db_session, snapshot_source(one), [_raw("x")])
        assert await persist_news_items(db_session, snapshot_source(two), [_raw("x")])


class TestProcessSourceFetch:
    """End-to-end fetch runs against a fake adapter."""

    @pytest.mark.asyncio
    async def test_success_records_counts_and_queues_scoring(
        self, db_session: AsyncSession, org_id: str, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        adapter = FakeAdapter([_raw("n-1"), _raw("n-2")])
        monkeypatch.setitem(registry.ADAPTERS, SourceType.RSS_FEED, adapter)
        (source,) = await add_rows(db_session, make_source(org_id))
        run_id = await _new_run(db_session, source.id)
        queue = _queue(IMPORTANCE_SCORE)

        outcome = await process_source_fetch(db_session, run_id, queue)

        assert outcome.status == FetchRunStatus.SUCCEEDED
        assert outcome.items_fetched == 2
        assert outcome.new_items == 2
        for news_item_id in outcome.new_news_item_ids:
            assert queue.is_pending(IMPORTANCE_SCORE, news_item_id)

        run = await _reload(db_session, SourceFetchRun, run_id)
        assert run.status == FetchRunStatus.SUCCEEDED
        assert run.new_items == 2
        assert run.finished_at is not None
        stored = await _reload(db_session, Source, source.id)
        assert stored.fetch_count == 1
        assert stored.last_success_at is not None

    @pytest.mark.asyncio
    async def test_refetch_of_same_items_creates_nothing(
        self, db_session: AsyncSession, org_id: str, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setitem(registry.ADAPTERS, SourceType.RSS_FEED, FakeAdapter([_raw("n-1")]))
        (source,) = await add_rows(db_session, make_source(org_id))

        first = await process_source_fetch(db_session, await _new_run(db_session, source.id))
        second = await process_source_fetch(db_session, await _new_run(db_session, source.id))

        assert first.new_items == 1
        assert second.items_fetched == 1
        assert second.new_items == 0
        assert second.new_news_item_ids == []

    @pytest.mark.asyncio
    async def test_paused_source_is_skipped(
        self, db_session: AsyncSession, org_id: str, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        adapter = FakeAdapter([_raw("n-1")])
        monkeypatch.setitem(registry.ADAPTERS, SourceType.RSS_FEED, adapter)
        (source,) = await add_rows(db_session, make_source(org_id, status=SourceStatus.PAUSED))
        run_id = await _new_run(db_session, source.id)

        outcome = await process_source_fetch(db_session, run_id)

        assert outcome.status == FetchRunStatus.SKIPPED
        assert adapter.calls == 0
        run = await _reload(db_session, SourceFetchRun, run_id)
        assert run.status == FetchRunStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_adapter_failure_is_recorded_and_reraised(
        self, db_session: AsyncSession, org_id: str, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        error = FetchError("Fake Feed request failed: HTTP 503", status_code=503)
        monkeypatch.setitem(registry.ADAPTERS, SourceType.RSS_FEED, FakeAdapter([], error))
        (source,) = await add_rows(db_session, make_source(org_id))
        run_id = await _new_run(db_session, source.id)

        with pytest.raises(FetchError):
            await process_source_fetch(db_session, run_id)

        run = await _reload(db_session, SourceFetchRun, run_id)
        assert run.status == FetchRunStatus.FAILED
        assert "HTTP 503" in run.error_message
        stored = await _reload(db_session, Source, source.id)
        assert stored.error_count == 1
        assert stored.last_error_message == run.error_message

        health = await get_source_health(db_session, source.id)
        assert health.failed_24h == 1
        assert health.success_rate == 0.0

    @pytest.mark.asyncio
    async def test_cancelled_fetch_is_closed_out(
        self, db_session: AsyncSession, org_id: str, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        adapter = FakeAdapter([], asyncio.CancelledError())
        monkeypatch.setitem(registry.ADAPTERS, SourceType.RSS_FEED, adapter)
        (source,) = await add_rows(db_session, make_source(org_id))
        run_id = await _new_run(db_session, source.id)

        with pytest.raises(asyncio.CancelledError):
            await process_source_fetch(db_session, run_id)

        run = await _reload(db_session, SourceFetchRun, run_id)
        assert run.status == FetchRunStatus.FAILED
        assert run.error_message == "Run was cancelled before it finished"
        stored = await _reload(db_session, Source, source.id)
        assert stored.error_count == 0


class TestTriggerSourceFetch:
    """Manual triggers respect in-flight runs and the cooldown."""

    @pytest.mark.asyncio
    async def test_trigger_queues_run(self, db_session: AsyncSession, org_id: str) -> None:
        (source,) = await add_rows(db_session, make_source(org_id))
        queue = _queue(SOURCE_FETCH)

        run = await trigger_source_fetch(db_session, queue, source.id)

        assert run.status == FetchRunStatus.QUEUED
        assert queue.is_pending(SOURCE_FETCH, run.id)

    @pytest.mark.asyncio
    async def test_second_trigger_hits_cooldown(
        self, db_session: AsyncSession, org_id: str
    ) -> None:
        (source,) = await add_rows(db_session, make_source(org_id))
        queue = _queue(SOURCE_FETCH)
        await trigger_source_fetch(db_session, queue, source.id)

        with pytest.raises(CooldownError):
            await trigger_source_fetch(db_session, queue, source.id)

    @pytest.mark.asyncio
    async def test_recent_finished_run_still_blocks(
        self, db_session: AsyncSession, org_id: str
    ) -> None:
        (source,) = await add_rows(db_session, make_source(org_id))
        await add_rows(
            db_session,
            SourceFetchRun(source_id=source.id, status=FetchRunStatus.SUCCEEDED),
        )

        with pytest.raises(CooldownError, match="1 minute"):
            await trigger_source_fetch(db_session, _queue(SOURCE_FETCH), source.id)

    @pytest.mark.asyncio
    async def test_stale_in_flight_run_is_superseded(
        self, db_session: AsyncSession, org_id: str
    ) -> None:
        (source,) = await add_rows(db_session, make_source(org_id))
        (lost,) = await add_rows(
            db_session,
            SourceFetchRun(
                source_id=source.id,
                status=FetchRunStatus.RUNNING,
                created_at=utcnow() - timedelta(hours=2),
            ),
        )

        run = await trigger_source_fetch(db_session, _queue(SOURCE_FETCH), source.id)

        assert run.id != lost.id
        stale = await _reload(db_session, SourceFetchRun, lost.id)
        assert stale.status == FetchRunStatus.FAILED
        assert stale.error_message == "Run was interrupted and superseded by a new run"
        assert stale.finished_at is not None

    @pytest.mark.asyncio
    async def test_unknown_source(self, db_session: AsyncSession) -> None:
        with pytest.raises(LookupError):
            await trigger_source_fetch(db_session, _queue(SOURCE_FETCH), 999_999)

    @pytest.mark.asyncio
    async def test_enqueue_refusal_fails_the_run(
        self, db_session: AsyncSession, org_id: str
    ) -> None:
        (source,) = await add_rows(db_session, make_source(org_id))

        with pytest.raises(EnqueueError):
            await trigger_source_fetch(db_session, _queue(), source.id)

        async with db_session.begin():
            result = await db_session.execute(
                select(SourceFetchRun).where(SourceFetchRun.source_id == source.id)
            )
            runs = result.scalars().all()
        assert [r.status for r in runs] == [FetchRunStatus.FAILED]
        assert runs[0].error_message.startswith("Failed to enqueue job")
