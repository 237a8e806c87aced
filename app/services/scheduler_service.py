"""Scheduler: finds due sources and query definitions and queues their runs.

A tick is safe to re-enter. An entity that already has a QUEUED or RUNNING
run is skipped and keeps its next-run timestamp, so it is picked up again on
the first tick after that run finishes. An in-flight run the queue has
lost (past its stale window and no longer pending) is marked FAILED and
replaced. The parent row is locked while checking, so a tick and a manual
trigger cannot both create a run.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.models.scheduler import SchedulerTickResult
from app.schemas.audit_events import AuditEventType
from app.schemas.base import ScheduleType, TriggerType
from app.schemas.query_definitions import QueryDefinition
from app.schemas.query_runs import QueryRun, QueryRunStatus
from app.schemas.source_fetch_runs import FetchRunStatus, SourceFetchRun
from app.schemas.sources import Source, SourceStatus
from app.services.audit_service import record_audit_event
from app.services.job_queue import JobQueue
from app.services.query_run_service import enqueue_query_run, in_flight_query_blocks
from app.services.source_fetch_service import enqueue_fetch_run, in_flight_fetch_blocks
from app.services.sources.base import utcnow

logger = logging.getLogger(__name__)


def _zone(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r}; using UTC")
        return ZoneInfo("UTC")


def calculate_next_run(
    schedule_type: ScheduleType,
    now: datetime,
    *,
    refresh_interval: int = 60,
    cron: Optional[str] = None,
    timezone: Optional[str] = "UTC",
) -> Optional[datetime]:
    """Next run time for a schedule, or None for MANUAL.

    ``now`` is naive UTC; the result is too. Seconds are truncated so runs
    line up on minute boundaries. CUSTOM schedules run daily; ``cron`` is
    stored but not evaluated.
    """
    base = now.replace(second=0, microsecond=0)

    if schedule_type == ScheduleType.MANUAL:
        return None
    if schedule_type == ScheduleType.HOURLY:
        return base + timedelta(minutes=refresh_interval)
    if schedule_type == ScheduleType.DAILY:
        return base + timedelta(days=1)
    if schedule_type == ScheduleType.WEEKDAYS:
        tz = _zone(timezone)
        nxt = base + timedelta(days=1)
        # weekday() is 5/6 for Sat/Sun in the schedule's own timezone
        while nxt.replace(tzinfo=ZoneInfo("UTC")).astimezone(tz).weekday() >= 5:
            nxt += timedelta(days=1)
        return nxt
    if schedule_type == ScheduleType.WEEKLY:
        return base + timedelta(days=7)
    if schedule_type == ScheduleType.CUSTOM:
        if cron:
            logger.debug(f"Cron expression {cron!r} approximated as daily")
        return base + timedelta(days=1)
    return None


async def run_scheduler_once(
    db: AsyncSession,
    queue: JobQueue,
    now: Optional[datetime] = None,
) -> SchedulerTickResult:
    """Run one scheduler pass over sources and query definitions.

    Args:
        db: Async database session
        queue: Queue that receives the created runs
        now: Tick time (naive UTC); defaults to the current time

    Returns:
        SchedulerTickResult with per-kind counts and any per-entity errors
    """
    now = now or utcnow()
    result = SchedulerTickResult(ran_at=now)

    async with db.begin():
        sources = await db.execute(
            select(Source.id)  # type: ignore[call-overload]
            .where(
                Source.is_scheduled.is_(True),  # type: ignore[attr-defined]
                Source.status == SourceStatus.ACTIVE,  # type: ignore[arg-type]
                Source.deleted_at.is_(None),  # type: ignore[union-attr]
                Source.next_fetch_at.is_not(None),  # type: ignore[union-attr]
                Source.next_fetch_at <= now,  # type: ignore[operator]
            )
            .order_by(Source.next_fetch_at)
        )
        due_source_ids = [row[0] for row in sources.all()]

        queries = await db.execute(
            select(QueryDefinition.id)  # type: ignore[call-overload]
            .where(
                QueryDefinition.is_scheduled.is_(True),  # type: ignore[attr-defined]
                QueryDefinition.is_active.is_(True),  # type: ignore[attr-defined]
                QueryDefinition.deleted_at.is_(None),  # type: ignore[union-attr]
                QueryDefinition.next_run_at.is_not(None),  # type: ignore[union-attr]
                QueryDefinition.next_run_at <= now,  # type: ignore[operator]
            )
            .order_by(QueryDefinition.next_run_at)
        )
        due_query_ids = [row[0] for row in queries.all()]

    result.sources_due = len(due_source_ids)
    result.queries_due = len(due_query_ids)
    logger.info(
        f"Scheduler tick at {now.isoformat()}: "
        f"{result.sources_due} source(s), {result.queries_due} query(ies) due"
    )

    for source_id in due_source_ids:
        try:
            if await _schedule_source(db, queue, source_id, now):
                result.sources_triggered += 1
            else:
                result.sources_skipped += 1
        except Exception as exc:
            logger.error(f"Failed to schedule source {source_id}: {exc}")
            result.errors.append(f"source {source_id}: {exc}")

    for query_id in due_query_ids:
        try:
            if await _schedule_query(db, queue, query_id, now):
                result.queries_triggered += 1
            else:
                result.queries_skipped += 1
        except Exception as exc:
            logger.error(f"Failed to schedule query {query_id}: {exc}")
            result.errors.append(f"query {query_id}: {exc}")

    return result


async def _schedule_source(
    db: AsyncSession, queue: JobQueue, source_id: int, now: datetime
) -> bool:
    async with db.begin():
        source = await db.get(Source, source_id, with_for_update=True)
        if source is None:
            return False

        if await in_flight_fetch_blocks(db, queue, source_id, now):
            logger.info(f"Source {source_id} has a fetch in flight; skipping")
            return False

        run = SourceFetchRun(
            source_id=source_id,
            status=FetchRunStatus.QUEUED,
            triggered_by=TriggerType.SCHEDULED,
            created_at=now,
        )
        db.add(run)
        await db.flush()

        source.next_fetch_at = calculate_next_run(
            source.schedule_type,
            now,
            refresh_interval=source.refresh_interval,
            cron=source.schedule_cron,
            timezone=source.schedule_timezone,
        )
        source.last_scheduled_at = now
        source.updated_at = now
        record_audit_event(
            db,
            org_id=source.org_id,
            event_type=AuditEventType.SOURCE_FETCH_STARTED,
            entity_type="SourceFetchRun",
            entity_id=run.id,
            action=f'Scheduled fetch started for "{source.name}"',
            details={"source_id": source_id, "triggered_by": TriggerType.SCHEDULED.value},
        )

    assert run.id is not None
    await enqueue_fetch_run(
        db, queue, fetch_run_id=run.id, source_id=source_id, triggered_by=TriggerType.SCHEDULED
    )
    logger.info(f"  + source {source_id} -> fetch run {run.id}")
    return True


async def _schedule_query(
    db: AsyncSession, queue: JobQueue, query_id: int, now: datetime
) -> bool:
    async with db.begin():
        query = await db.get(QueryDefinition, query_id, with_for_update=True)
        if query is None:
            return False

        if await in_flight_query_blocks(db, queue, query_id, now):
            logger.info(f"Query {query_id} has a run in flight; skipping")
            return False

        run = QueryRun(
            org_id=query.org_id,
            query_definition_id=query_id,
            status=QueryRunStatus.QUEUED,
            triggered_by=TriggerType.SCHEDULED,
            created_at=now,
        )
        db.add(run)
        await db.flush()

        query.next_run_at = calculate_next_run(
            query.schedule_type,
            now,
            refresh_interval=query.refresh_interval,
            cron=query.schedule_cron,
            timezone=query.schedule_timezone,
        )
        query.last_run_at = now
        query.updated_at = now
        record_audit_event(
            db,
            org_id=query.org_id,
            event_type=AuditEventType.QUERY_RUN_STARTED,
            entity_type="QueryRun",
            entity_id=run.id,
            action=f'Scheduled run started for "{query.name}"',
            details={"query_definition_id": query_id, "triggered_by": TriggerType.SCHEDULED.value},
        )

    assert run.id is not None
    await enqueue_query_run(
        db, queue, query_run_id=run.id, query_definition_id=query_id,
        triggered_by=TriggerType.SCHEDULED,
    )
    logger.info(f"  + query {query_id} -> run {run.id}")
    return True


class SchedulerLoop:
    """Runs a scheduler tick every ``interval`` seconds on an APScheduler interval job.

    The job is configured with ``max_instances=1`` and ``coalesce=True``: a slow
    tick never overlaps the next one, and ticks missed while the loop was
    blocked collapse into a single run.
    """

    JOB_ID = "scheduler-tick"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        queue: JobQueue,
        interval: Optional[float] = None,
    ) -> None:
        self.session_factory = session_factory
        self.queue = queue
        self.interval = interval if interval is not None else settings.scheduler_tick_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def job(self) -> Optional[Job]:
        if self._scheduler is None:
            return None
        return self._scheduler.get_job(self.JOB_ID)

    def start(self) -> None:
        if self.running:
            return
        scheduler = AsyncIOScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": max(int(self.interval), 1),
            },
        )
        scheduler.add_job(
            self.tick,
            trigger=IntervalTrigger(seconds=self.interval),
            id=self.JOB_ID,
            name="Scheduler tick",
            replace_existing=True,
            next_run_time=datetime.now(UTC),
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info(f"Scheduler started (every {self.interval}s)")

    async def stop(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Scheduler stopped")

    async def tick(self) -> Optional[SchedulerTickResult]:
        """One scheduler pass on a fresh session. Errors are logged, never raised."""
        try:
            async with self.session_factory() as db:
                return await run_scheduler_once(db, self.queue)
        except Exception as exc:
            logger.error(f"Scheduler tick failed: {exc}")
            return None
