"""Source fetch runs: manual triggers, the fetch worker, and health stats."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.errors import CooldownError, EnqueueError
from app.models.sources import FetchOutcome, FetchRunRead, SourceHealth
from app.schemas.audit_events import AuditEventType
from app.schemas.base import TriggerType
from app.schemas.news_items import NewsItem
from app.schemas.odds import GameResult, OddsSnapshot
from app.schemas.source_fetch_runs import (
    IN_FLIGHT_FETCH_STATUSES,
    FetchRunStatus,
    SourceFetchRun,
)
from app.schemas.sources import Source, SourceStatus
from app.services.audit_service import record_audit_event
from app.services.job_queue import IMPORTANCE_SCORE, SOURCE_FETCH, JobQueue
from app.services.sources.base import (
    FetchOptions,
    RawGameResult,
    RawNewsItem,
    RawOddsData,
    SourceSnapshot,
    supports_odds,
    supports_results,
    utcnow,
)
from app.services.sources.registry import get_adapter_or_raise

logger = logging.getLogger(__name__)

FETCH_LOOKBACK = timedelta(days=7)
FETCH_LIMIT = 100
INTERRUPTED_MESSAGE = "Run was interrupted and superseded by a new run"
CANCELLED_MESSAGE = "Run was cancelled before it finished"

_TRANSIENT_DB_ERROR_MARKERS = (
    "cache lookup failed for type",
    "InvalidCachedStatementError",
    "cached statement plan is invalid",
    "ConnectionDoesNotExistError",
    "connection was closed",
    "closed in the middle of operation",
)


def _is_transient_db_error(exc: BaseException) -> bool:
    """Return True when the DB exception is likely fixed by retrying once."""
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    text = str(exc)
    return any(marker in text for marker in _TRANSIENT_DB_ERROR_MARKERS)


def snapshot_source(source: Source) -> SourceSnapshot:
    if source.id is None:
        raise ValueError("Source must be persisted before it can be fetched")
    return SourceSnapshot(
        id=source.id,
        org_id=source.org_id,
        name=source.name,
        type=source.type,
        sport=source.sport,
        config=dict(source.config or {}),
    )


async def enqueue_fetch_run(
    db: AsyncSession,
    queue: JobQueue,
    *,
    fetch_run_id: int,
    source_id: int,
    triggered_by: TriggerType,
) -> None:
    """Hand a QUEUED run to the queue; on refusal mark it FAILED and raise."""
    try:
        await queue.enqueue(
            SOURCE_FETCH,
            {
                "fetch_run_id": fetch_run_id,
                "source_id": source_id,
                "triggered_by": triggered_by.value,
            },
            job_id=fetch_run_id,
        )
    except Exception as exc:
        message = f"Failed to enqueue job: {exc}"
        logger.error(f"Fetch run {fetch_run_id}: {message}")
        async with db.begin():
            run = await db.get(SourceFetchRun, fetch_run_id)
            if run is not None:
                run.status = FetchRunStatus.FAILED
                run.error_message = message
                run.finished_at = utcnow()
        raise EnqueueError(message) from exc


async def in_flight_fetch_blocks(
    db: AsyncSession, queue: JobQueue, source_id: int, now: datetime
) -> bool:
    """Check a source's QUEUED/RUNNING runs before another one is created.

    A run older than ``stale_fetch_run_minutes`` that the queue no longer
    holds was lost to a restart or a dropped job. It is marked FAILED so it
    stops blocking the source. Runs inside the caller's transaction.

    Returns:
        True when a live run remains and no new run should be created.
    """
    window = timedelta(minutes=settings.stale_fetch_run_minutes)
    in_flight = await db.execute(
        select(SourceFetchRun).where(
            SourceFetchRun.source_id == source_id,  # type: ignore[arg-type]
            SourceFetchRun.status.in_(IN_FLIGHT_FETCH_STATUSES),  # type: ignore[attr-defined]
        )
    )
    blocked = False
    for run in in_flight.scalars().all():
        if run.created_at >= now - window or queue.is_pending(SOURCE_FETCH, run.id):
            blocked = True
            continue
        logger.warning(f"Superseding orphaned fetch run {run.id} for source {source_id}")
        run.status = FetchRunStatus.FAILED
        run.error_message = INTERRUPTED_MESSAGE
        run.finished_at = now
    return blocked


async def trigger_source_fetch(
    db: AsyncSession,
    queue: JobQueue,
    source_id: int,
    triggered_by: TriggerType = TriggerType.MANUAL,
) -> SourceFetchRun:
    """Create and enqueue a fetch run for a manual or API trigger.

    Raises:
        LookupError: no such source.
        CooldownError: a run is in flight or one was created too recently.
        EnqueueError: the queue refused the job (the run is left FAILED).
    """
    now = utcnow()
    cooldown = timedelta(minutes=settings.source_run_cooldown_minutes)

    async with db.begin():
        # Row lock serializes concurrent triggers for the same source
        source = await db.get(Source, source_id, with_for_update=True)
        if source is None or source.deleted_at is not None:
            raise LookupError(f"Source not found: {source_id}")

        if await in_flight_fetch_blocks(db, queue, source_id, now):
            raise CooldownError("A fetch for this source is already queued or running")

        recent = await db.execute(
            select(SourceFetchRun.id)  # type: ignore[call-overload]
            .where(
                SourceFetchRun.source_id == source_id,  # type: ignore[arg-type]
                SourceFetchRun.created_at >= now - cooldown,  # type: ignore[operator]
            )
            .limit(1)
        )
        if recent.first() is not None:
            raise CooldownError("Please wait at least 1 minute between manual runs")

        run = SourceFetchRun(
            source_id=source_id,
            status=FetchRunStatus.QUEUED,
            triggered_by=triggered_by,
            created_at=now,
        )
        db.add(run)
        await db.flush()
        record_audit_event(
            db,
            org_id=source.org_id,
            event_type=AuditEventType.SOURCE_FETCH_STARTED,
            entity_type="SourceFetchRun",
            entity_id=run.id,
            action=f'Manual fetch started for "{source.name}"',
            details={"source_id": source_id, "triggered_by": triggered_by.value},
        )

    assert run.id is not None
    await enqueue_fetch_run(
        db, queue, fetch_run_id=run.id, source_id=source_id, triggered_by=triggered_by
    )
    logger.info(f"Queued fetch run {run.id} for source {source_id}")
    return run


async def process_source_fetch(
    db: AsyncSession,
    fetch_run_id: int,
    queue: Optional[JobQueue] = None,
) -> FetchOutcome:
    """Execute one fetch run end to end.

    Args:
        db: Async database session
        fetch_run_id: Run to execute; must reference an existing source
        queue: When given, new news items are queued for importance scoring

    Returns:
        FetchOutcome with counts and the ids of newly inserted items

    Raises:
        Any adapter or persistence error, after recording it on the run
        and the source. The queue owns retries.
    """
    async with db.begin():
        run = await db.get(SourceFetchRun, fetch_run_id)
        if run is None:
            raise LookupError(f"Fetch run not found: {fetch_run_id}")
        source = await db.get(Source, run.source_id)
        if source is None:
            raise LookupError(f"Source not found: {run.source_id}")

        if source.status == SourceStatus.PAUSED:
            run.status = FetchRunStatus.SKIPPED
            run.error_message = "Source is paused"
            run.finished_at = utcnow()
            logger.info(f"Source {source.id} is paused; skipping run {fetch_run_id}")
            return FetchOutcome(fetch_run_id=fetch_run_id, status=FetchRunStatus.SKIPPED)

        run.status = FetchRunStatus.RUNNING
        run.started_at = utcnow()
        snapshot = snapshot_source(source)
        since = source.last_fetch_at or utcnow() - FETCH_LOOKBACK

    logger.info(f"-> {snapshot.name} ({snapshot.type.value}) run {fetch_run_id}")

    try:
        outcome = await _fetch_and_persist(db, snapshot, fetch_run_id, since)
    except asyncio.CancelledError:
        await _mark_cancelled(db, fetch_run_id)
        raise
    except Exception as exc:
        await _record_failure(db, fetch_run_id, snapshot.id, str(exc) or type(exc).__name__)
        raise

    if queue is not None:
        for news_item_id in outcome.new_news_item_ids:
            try:
                await queue.enqueue(
                    IMPORTANCE_SCORE, {"news_item_id": news_item_id}, job_id=news_item_id
                )
            except EnqueueError as exc:
                logger.warning(f"  Could not queue importance scoring for {news_item_id}: {exc}")

    logger.info(
        f"  {snapshot.name}: {outcome.items_fetched} fetched, {outcome.new_items} new, "
        f"{outcome.results_created} results, {outcome.odds_created} odds"
    )
    return outcome


async def _fetch_and_persist(
    db: AsyncSession,
    source: SourceSnapshot,
    fetch_run_id: int,
    since: Any,
) -> FetchOutcome:
    adapter = get_adapter_or_raise(source.type)
    options = FetchOptions(since=since, limit=FETCH_LIMIT)

    result = await adapter.fetch(source, options)
    new_ids = await persist_news_items(db, source, result.items)

    results_created = 0
    if supports_results(adapter):
        try:
            game_results = await adapter.fetch_results(source, options)  # type: ignore[attr-defined]
            results_created = await persist_game_results(db, source, game_results)
        except Exception as exc:
            logger.warning(f"  Results fetch failed for {source.name}: {exc}")

    odds_created = 0
    if supports_odds(adapter):
        try:
            odds = await adapter.fetch_odds(source, options)  # type: ignore[attr-defined]
            odds_created = await persist_odds(db, source, odds)
        except Exception as exc:
            logger.warning(f"  Odds fetch failed for {source.name}: {exc}")

    finished = utcnow()
    async with db.begin():
        row = await db.get(Source, source.id)
        if row is not None:
            row.last_fetch_at = finished
            row.last_success_at = finished
            row.fetch_count += 1
            row.updated_at = finished
        run = await db.get(SourceFetchRun, fetch_run_id)
        if run is not None:
            run.status = FetchRunStatus.SUCCEEDED
            run.finished_at = finished
            run.items_fetched = len(result.items)
            run.new_items = len(new_ids)
            run.results_created = results_created
            run.odds_created = odds_created

    return FetchOutcome(
        fetch_run_id=fetch_run_id,
        status=FetchRunStatus.SUCCEEDED,
        items_fetched=len(result.items),
        new_items=len(new_ids),
        results_created=results_created,
        odds_created=odds_created,
        new_news_item_ids=new_ids,
    )


async def _mark_cancelled(db: AsyncSession, fetch_run_id: int) -> None:
    """Close out a run whose worker was cancelled, e.g. at shutdown."""
    logger.warning(f"Fetch run {fetch_run_id} cancelled")
    async with db.begin():
        run = await db.get(SourceFetchRun, fetch_run_id)
        if run is not None and run.status in IN_FLIGHT_FETCH_STATUSES:
            run.status = FetchRunStatus.FAILED
            run.error_message = CANCELLED_MESSAGE
            run.finished_at = utcnow()


async def _record_failure(
    db: AsyncSession, fetch_run_id: int, source_id: int, message: str
) -> None:
    logger.error(f"Fetch run {fetch_run_id} failed: {message}")
    now = utcnow()
    async with db.begin():
        run = await db.get(SourceFetchRun, fetch_run_id)
        if run is not None:
            run.status = FetchRunStatus.FAILED
            run.error_message = message
            run.finished_at = now
        source = await db.get(Source, source_id)
        if source is not None:
            source.error_count += 1
            source.last_error_at = now
            source.last_error_message = message
            source.updated_at = now


async def persist_news_items(
    db: AsyncSession,
    source: SourceSnapshot,
    items: list[RawNewsItem],
) -> list[int]:
    """Insert items, skipping ones already stored for this source.

    Returns:
        Ids of the rows actually inserted.
    """
    seen: set[str] = set()
    rows: list[dict[str, Any]] = []
    created_at = utcnow()
    for item in items:
        if item.external_id in seen:
            continue
        seen.add(item.external_id)
        rows.append(
            {
                "org_id": source.org_id,
                "source_id": source.id,
                "external_id": item.external_id,
                "type": item.type,
                "sport": source.sport,
                "headline": item.headline,
                "content": item.content,
                "url": item.url,
                "image_url": item.image_url,
                "author": item.author,
                "published_at": item.published_at,
                "teams": [],
                "players": [],
                "topics": [],
                "score_breakdown": {},
                "is_processed": False,
                "is_paired": False,
                "created_at": created_at,
            }
        )
    if not rows:
        return []

    async def _attempt() -> list[int]:
        async with db.begin():
            stmt = (
                insert(NewsItem)
                .values(rows)
                .on_conflict_do_nothing(constraint="uq_news_items_org_source_external")
                .returning(NewsItem.__table__.c.id)  # type: ignore[attr-defined]
            )
            result = await db.execute(stmt)
            return list(result.scalars().all())

    try:
        inserted = await _attempt()
    except Exception as exc:
        if not _is_transient_db_error(exc):
            raise
        logger.warning("Transient DB error during news insert; retrying once")
        inserted = await _attempt()

    for row in rows[:5]:
        logger.debug(f"  + {row['headline'][:60]}")
    return inserted


async def persist_game_results(
    db: AsyncSession,
    source: SourceSnapshot,
    results: list[RawGameResult],
) -> int:
    """Upsert results on the matchup key; later fetches refresh the score."""
    if not results:
        return 0
    now = utcnow()
    rows_by_key: dict[tuple[str, str, Any], dict[str, Any]] = {}
    for r in results:
        rows_by_key[(r.home_team, r.away_team, r.game_date)] = {
            "org_id": source.org_id,
            "source_id": source.id,
            "sport": source.sport,
            "external_game_id": r.external_game_id or None,
            "home_team": r.home_team,
            "away_team": r.away_team,
            "game_date": r.game_date,
            "home_score": r.home_score,
            "away_score": r.away_score,
            "status": r.status,
            "spread_winner": r.spread_winner,
            "total_result": r.total_result,
            "stats": r.stats,
            "created_at": now,
            "updated_at": now,
        }
    rows = list(rows_by_key.values())

    stmt = insert(GameResult).values(rows)
    stmt = stmt.on_conflict_do_update(
        constraint="uq_game_results_matchup",
        set_={
            "home_score": stmt.excluded.home_score,
            "away_score": stmt.excluded.away_score,
            "status": stmt.excluded.status,
            "spread_winner": stmt.excluded.spread_winner,
            "total_result": stmt.excluded.total_result,
            "stats": stmt.excluded.stats,
            "external_game_id": stmt.excluded.external_game_id,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    async with db.begin():
        await db.execute(stmt)
    return len(rows)


async def persist_odds(
    db: AsyncSession,
    source: SourceSnapshot,
    odds: list[RawOddsData],
) -> int:
    if not odds:
        return 0
    captured_at = utcnow()
    async with db.begin():
        for o in odds:
            db.add(
                OddsSnapshot(
                    org_id=source.org_id,
                    source_id=source.id,
                    sport=source.sport,
                    external_game_id=o.external_game_id or None,
                    home_team=o.home_team,
                    away_team=o.away_team,
                    game_date=o.game_date,
                    home_moneyline=o.home_moneyline,
                    away_moneyline=o.away_moneyline,
                    spread=o.spread,
                    spread_juice=o.spread_juice,
                    over_under=o.over_under,
                    over_juice=o.over_juice,
                    under_juice=o.under_juice,
                    captured_at=captured_at,
                )
            )
    return len(odds)


async def get_source_health(db: AsyncSession, source_id: int) -> SourceHealth:
    """Summarize fetch history for one source.

    Raises:
        LookupError: no such source.
    """
    day_ago = utcnow() - timedelta(hours=24)
    async with db.begin():
        source = await db.get(Source, source_id)
        if source is None or source.deleted_at is not None:
            raise LookupError(f"Source not found: {source_id}")

        by_status_rows = await db.execute(
            select(SourceFetchRun.status, func.count())  # type: ignore[call-overload]
            .where(SourceFetchRun.source_id == source_id)  # type: ignore[arg-type]
            .group_by(SourceFetchRun.status)
        )
        runs_by_status = {
            (status.value if hasattr(status, "value") else str(status)): count
            for status, count in by_status_rows.all()
        }

        recent_rows = await db.execute(
            select(SourceFetchRun.status, func.count())  # type: ignore[call-overload]
            .where(
                SourceFetchRun.source_id == source_id,  # type: ignore[arg-type]
                SourceFetchRun.created_at >= day_ago,  # type: ignore[operator]
            )
            .group_by(SourceFetchRun.status)
        )
        recent_counts = {
            (status.value if hasattr(status, "value") else str(status)): count
            for status, count in recent_rows.all()
        }

        runs = await db.execute(
            select(SourceFetchRun)
            .where(SourceFetchRun.source_id == source_id)  # type: ignore[arg-type]
            .order_by(SourceFetchRun.created_at.desc())  # type: ignore[attr-defined]
            .limit(10)
        )
        recent_runs = [FetchRunRead.model_validate(r, from_attributes=True) for r in runs.scalars()]

    succeeded = recent_counts.get(FetchRunStatus.SUCCEEDED.value, 0)
    failed = recent_counts.get(FetchRunStatus.FAILED.value, 0)
    finished = succeeded + failed
    success_rate = round(succeeded / finished * 100, 1) if finished else 100.0

    return SourceHealth(
        source_id=source_id,
        status=source.status,
        total_runs=sum(runs_by_status.values()),
        runs_by_status=runs_by_status,
        succeeded_24h=succeeded,
        failed_24h=failed,
        success_rate=success_rate,
        last_success_at=source.last_success_at,
        last_error_at=source.last_error_at,
        last_error_message=source.last_error_message,
        recent_runs=recent_runs,
    )
