"""Query runs: manual triggers and the search -> transcript -> score pipeline.

A run moves through fixed progress checkpoints that only ever increase:

     5  Searching YouTube...
    15  Found N videos, fetching transcripts...
 15-45  per-video progress
    45  Scoring N videos...
 45-85  per-video progress
    85  Ranking candidates...
    90  Saving N candidates...
   100  Completed

Per-video failures are logged and skipped. Anything else marks the run
FAILED and raises PipelineFatal. Candidates are written in one transaction
after ranking, so a failed run leaves none behind.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.errors import CooldownError, EnqueueError, PipelineFatal
from app.schemas.audit_events import AuditEventType
from app.schemas.candidates import Candidate
from app.schemas.base import Sport, TriggerType
from app.schemas.query_definitions import QueryDefinition
from app.schemas.query_runs import IN_FLIGHT_QUERY_STATUSES, QueryRun, QueryRunStatus
from app.schemas.youtube_videos import TranscriptSource
from app.services.analysis_service import (
    AnalysisConfig,
    AnalyzedVideo,
    Moment,
    VideoView,
    analyze_video,
    analyze_video_metadata_only,
    merge_adjacent_moments,
    rank_candidates,
    save_analysis_results,
)
from app.services.audit_service import record_audit_event
from app.services.embedding_service import embedding_service
from app.services.job_queue import QUERY_RUN, JobQueue
from app.services.scoring_service import Embedder
from app.services.sources.base import utcnow
from app.services.transcript_service import (
    CaptionSegment,
    TranscriptResult,
    save_transcript,
    transcript_service,
)
from app.services.video_analysis_service import (
    TranscriptAnalysis,
    VideoTranscriptResult,
    transcript_analysis_service,
)
from app.services.youtube_service import (
    SearchOptions,
    VideoResult,
    upsert_video,
    youtube_search_service,
)

logger = logging.getLogger(__name__)

COOLDOWN_MESSAGE = "A run is already in progress or was started recently. Please wait."
INTERRUPTED_MESSAGE = "Run was interrupted and superseded by a new run"
CANCELLED_MESSAGE = "Run was cancelled before it finished"
GEMINI_BASE_SCORE = 0.7
GEMINI_MOMENT_CONFIDENCE = 0.8


class VideoSearcher(Protocol):
    async def search_videos(self, options: SearchOptions) -> list[VideoResult]: ...


class TranscriptFetcher(Protocol):
    async def fetch_transcript(self, video_id: str) -> Optional[TranscriptResult]: ...


class VideoAnalyzer(Protocol):
    is_configured: bool

    async def analyze_transcript(
        self, transcript: str, keywords: list[str], sport: str, title: str, channel: str
    ) -> Optional[TranscriptAnalysis]: ...

    async def analyze_youtube_video(
        self, video_id: str, keywords: list[str], sport: str
    ) -> Optional[VideoTranscriptResult]: ...


@dataclass(frozen=True, slots=True)
class _QuerySnapshot:
    id: int
    org_id: str
    name: str
    sport: Sport
    keywords: list[str]
    channel_ids: list[str]
    recency_days: int
    max_results: int


@dataclass(slots=True)
class _SavedVideo:
    db_id: int
    transcript_id: Optional[int]
    full_text: Optional[str]
    video: VideoResult


async def enqueue_query_run(
    db: AsyncSession,
    queue: JobQueue,
    *,
    query_run_id: int,
    query_definition_id: int,
    triggered_by: TriggerType,
) -> None:
    """Hand a QUEUED run to the queue; on refusal mark it FAILED and raise."""
    try:
        await queue.enqueue(
            QUERY_RUN,
            {
                "query_run_id": query_run_id,
                "query_definition_id": query_definition_id,
                "triggered_by": triggered_by.value,
            },
            job_id=query_run_id,
        )
    except Exception as exc:
        message = f"Failed to enqueue job: {exc}"
        logger.error(f"Query run {query_run_id}: {message}")
        async with db.begin():
            run = await db.get(QueryRun, query_run_id)
            if run is not None:
                run.status = QueryRunStatus.FAILED
                run.error_message = message
                run.finished_at = utcnow()
        raise EnqueueError(message) from exc


async def in_flight_query_blocks(
    db: AsyncSession, queue: JobQueue, query_definition_id: int, now: datetime
) -> bool:
    """Check a definition's QUEUED/RUNNING runs before another one is created.

    Runs past the cooldown window that the queue no longer holds were lost
    to a restart and are marked FAILED. Returns True when a live run remains.
    """
    window = timedelta(minutes=settings.query_run_cooldown_minutes)
    in_flight = await db.execute(
        select(QueryRun).where(
            QueryRun.query_definition_id == query_definition_id,  # type: ignore[arg-type]
            QueryRun.status.in_(IN_FLIGHT_QUERY_STATUSES),  # type: ignore[attr-defined]
        )
    )
    blocked = False
    for stale in in_flight.scalars().all():
        if stale.created_at >= now - window or queue.is_pending(QUERY_RUN, stale.id):
            blocked = True
            continue
        logger.warning(f"Superseding orphaned query run {stale.id}")
        stale.status = QueryRunStatus.FAILED
        stale.error_message = INTERRUPTED_MESSAGE
        stale.finished_at = now
    return blocked


async def trigger_query_run(
    db: AsyncSession,
    queue: JobQueue,
    query_definition_id: int,
    triggered_by: TriggerType = TriggerType.MANUAL,
) -> QueryRun:
    """Create and enqueue a run for a query definition.

    Raises:
        LookupError: no such active query definition.
        CooldownError: a run is QUEUED or RUNNING.
        EnqueueError: the queue refused the job (the run is left FAILED).
    """
    now = utcnow()
    async with db.begin():
        # Row lock serializes concurrent triggers for the same definition
        query = await db.get(QueryDefinition, query_definition_id, with_for_update=True)
        if query is None or query.deleted_at is not None:
            raise LookupError(f"Query definition not found: {query_definition_id}")

        if await in_flight_query_blocks(db, queue, query_definition_id, now):
            raise CooldownError(COOLDOWN_MESSAGE)

        run = QueryRun(
            org_id=query.org_id,
            query_definition_id=query_definition_id,
            status=QueryRunStatus.QUEUED,
            triggered_by=triggered_by,
            created_at=now,
        )
        db.add(run)
        await db.flush()
        query.last_run_at = now
        record_audit_event(
            db,
            org_id=query.org_id,
            event_type=AuditEventType.QUERY_RUN_STARTED,
            entity_type="QueryRun",
            entity_id=run.id,
            action=f'Manual run started for "{query.name}"',
            details={"query_definition_id": query_definition_id, "triggered_by": triggered_by.value},
        )

    assert run.id is not None
    await enqueue_query_run(
        db, queue, query_run_id=run.id, query_definition_id=query_definition_id,
        triggered_by=triggered_by,
    )
    logger.info(f"Queued query run {run.id} for query {query_definition_id}")
    return run


async def _update_run(db: AsyncSession, run_id: int, **values: Any) -> None:
    """Write fields on a run. ``progress`` never moves backwards."""
    async with db.begin():
        run = await db.get(QueryRun, run_id)
        if run is None:
            return
        progress = values.pop("progress", None)
        if progress is not None:
            run.progress = max(run.progress, min(int(progress), 100))
        for key, value in values.items():
            setattr(run, key, value)


async def _progress(db: AsyncSession, run_id: int, progress: int, message: str) -> None:
    logger.info(f"  run {run_id} [{progress}%] {message}")
    await _update_run(db, run_id, progress=progress, progress_message=message)


async def process_query_run(
    db: AsyncSession,
    query_run_id: int,
    *,
    search: Optional[VideoSearcher] = None,
    transcripts: Optional[TranscriptFetcher] = None,
    analyzer: Optional[VideoAnalyzer] = None,
    embedder: Optional[Embedder] = None,
    max_candidates: Optional[int] = None,
) -> QueryRun:
    """Execute one query run end to end.

    Args:
        db: Async database session
        query_run_id: Run to execute
        search: Video search collaborator (defaults to YouTube)
        transcripts: Caption fetcher (defaults to the watch-page fetcher)
        analyzer: Generative analyzer (defaults to Gemini when configured)
        embedder: Embedding collaborator (defaults to Gemini when configured)
        max_candidates: Top-N kept after ranking

    Returns:
        The finished QueryRun

    Raises:
        PipelineFatal: anything outside per-video handling failed
    """
    search = search or youtube_search_service
    transcripts = transcripts or transcript_service
    analyzer = analyzer or transcript_analysis_service
    if embedder is None and embedding_service.is_configured:
        embedder = embedding_service
    top_n = max_candidates or settings.max_candidates
    ai_enabled = bool(getattr(analyzer, "is_configured", True))
    config = AnalysisConfig(use_ai=ai_enabled, use_embeddings=embedder is not None)

    async with db.begin():
        run = await db.get(QueryRun, query_run_id)
        if run is None:
            raise LookupError(f"Query run not found: {query_run_id}")
        if run.status in (QueryRunStatus.SUCCEEDED, QueryRunStatus.CANCELLED):
            logger.info(f"Query run {query_run_id} is already {run.status.value}; nothing to do")
            return run
        saved = await db.scalar(
            select(func.count())
            .select_from(Candidate)
            .where(Candidate.query_run_id == query_run_id)  # type: ignore[arg-type]
        )
        if saved:
            # An earlier attempt saved its candidates and failed afterwards
            logger.info(f"Query run {query_run_id} already saved {saved} candidates; completing")
            run.status = QueryRunStatus.SUCCEEDED
            run.error_message = None
            run.finished_at = utcnow()
            run.progress = 100
            run.progress_message = "Completed"
            run.candidates_produced = saved
            return run

        # A retried run keeps its progress; checkpoints below it are no-ops
        run.status = QueryRunStatus.RUNNING
        run.error_message = None
        run.started_at = run.started_at or utcnow()
        run.progress_message = (
            "Starting query run..." if run.progress == 0 else f"Retrying from {run.progress}%..."
        )
        query_definition_id = run.query_definition_id

    try:
        async with db.begin():
            query = await db.get(QueryDefinition, query_definition_id)
            if query is None:
                raise LookupError("Query definition not found")
            assert query.id is not None
            snapshot = _QuerySnapshot(
                id=query.id,
                org_id=query.org_id,
                name=query.name,
                sport=query.sport,
                keywords=list(query.keywords or []),
                channel_ids=list(query.channel_ids or []),
                recency_days=query.recency_days,
                max_results=query.max_results,
            )

        logger.info(f"-> {snapshot.name} (run {query_run_id})")
        produced = await _run_stages(
            db, query_run_id, snapshot, search, transcripts, analyzer, embedder, config, top_n
        )
    except asyncio.CancelledError:
        logger.warning(f"Query run {query_run_id} cancelled")
        await _update_run(
            db,
            query_run_id,
            status=QueryRunStatus.FAILED,
            error_message=CANCELLED_MESSAGE,
            finished_at=utcnow(),
        )
        raise
    except Exception as exc:
        message = str(exc) or type(exc).__name__
        logger.error(f"Query run {query_run_id} failed: {message}")
        await _update_run(
            db,
            query_run_id,
            status=QueryRunStatus.FAILED,
            error_message=message,
            finished_at=utcnow(),
        )
        if isinstance(exc, PipelineFatal):
            raise
        raise PipelineFatal(message) from exc

    await _update_run(
        db,
        query_run_id,
        status=QueryRunStatus.SUCCEEDED,
        finished_at=utcnow(),
        progress=100,
        progress_message="Completed",
        candidates_produced=produced,
    )
    logger.info(f"  run {query_run_id} completed with {produced} candidates")

    async with db.begin():
        finished = await db.get(QueryRun, query_run_id)
    assert finished is not None
    return finished


async def _run_stages(
    db: AsyncSession,
    run_id: int,
    query: _QuerySnapshot,
    search: VideoSearcher,
    transcripts: TranscriptFetcher,
    analyzer: VideoAnalyzer,
    embedder: Optional[Embedder],
    config: AnalysisConfig,
    top_n: int,
) -> int:
    await _progress(db, run_id, 5, "Searching YouTube...")
    videos = await search.search_videos(
        SearchOptions(
            keywords=query.keywords,
            sport=query.sport,
            max_results=min(query.max_results, 50),
            published_after=utcnow() - timedelta(days=query.recency_days),
            channel_ids=query.channel_ids,
        )
    )
    await _update_run(db, run_id, videos_fetched=len(videos))
    await _progress(db, run_id, 15, f"Found {len(videos)} videos, fetching transcripts...")

    saved: list[_SavedVideo] = []
    transcripts_fetched = 0
    for i, video in enumerate(videos):
        try:
            db_id = await upsert_video(db, query.org_id, video)
            transcript_id: Optional[int] = None
            full_text: Optional[str] = None
            try:
                transcript = await transcripts.fetch_transcript(video.video_id)
                if transcript is not None:
                    transcript_id = await save_transcript(db, query.org_id, db_id, transcript)
                    full_text = transcript.full_text
                    transcripts_fetched += 1
            except Exception as e:
                logger.warning(f"  Transcript unavailable for {video.video_id}: {e}")
            saved.append(_SavedVideo(db_id, transcript_id, full_text, video))
        except Exception as e:
            logger.warning(f"  Error processing video {video.video_id}: {e}")

        if i % 5 == 0 or i == len(videos) - 1:
            await _progress(
                db, run_id, 15 + (i * 30) // len(videos),
                f"Processing {i + 1}/{len(videos)} videos...",
            )

    await _update_run(db, run_id, transcripts_fetched=transcripts_fetched)
    await _progress(db, run_id, 45, f"Scoring {len(saved)} videos...")

    analyzed: list[AnalyzedVideo] = []
    ai_analyzed = 0
    for i, item in enumerate(saved):
        try:
            analysis: Optional[AnalyzedVideo] = None
            if item.transcript_id is None and config.use_ai:
                analysis = await _analyze_with_video_model(db, query, item, analyzer)
                if analysis is not None:
                    transcripts_fetched += 1
                    ai_analyzed += 1

            if analysis is None:
                if item.transcript_id is not None and item.full_text is not None:
                    analysis = await analyze_video(
                        db, item.db_id, item.transcript_id, item.full_text,
                        query.keywords, query.sport.value, config,
                        analyzer=analyzer if config.use_ai else None,
                        embedder=embedder,
                    )
                else:
                    analysis = analyze_video_metadata_only(
                        _view_of(item), query.keywords, query.sport.value
                    )
            if analysis is not None:
                analyzed.append(analysis)
        except Exception as e:
            logger.warning(f"  Error analyzing video {item.video.video_id}: {e}")

        if i % 3 == 0 or i == len(saved) - 1:
            await _progress(
                db, run_id, 45 + (i * 40) // len(saved),
                f"Analyzed {i + 1}/{len(saved)} videos "
                f"({ai_analyzed} with AI, {len(analyzed)} candidates)...",
            )

    await _update_run(
        db, run_id, transcripts_fetched=transcripts_fetched, videos_processed=len(saved)
    )
    await _progress(db, run_id, 85, "Ranking candidates...")
    top = rank_candidates(analyzed, top_n)

    await _progress(db, run_id, 90, f"Saving {len(top)} candidates...")
    await save_analysis_results(db, query.org_id, run_id, query.id, top)
    return len(top)


def _view_of(item: _SavedVideo) -> VideoView:
    v = item.video
    return VideoView(
        id=item.db_id,
        title=v.title,
        description=v.description,
        channel_title=v.channel_title,
        published_at=v.published_at,
        view_count=v.view_count,
        like_count=v.like_count,
    )


async def _analyze_with_video_model(
    db: AsyncSession,
    query: _QuerySnapshot,
    item: _SavedVideo,
    analyzer: VideoAnalyzer,
) -> Optional[AnalyzedVideo]:
    """Transcript and moments from the video model when captions were missing."""
    try:
        result = await asyncio.wait_for(
            analyzer.analyze_youtube_video(item.video.video_id, query.keywords, query.sport.value),
            timeout=settings.gemini_timeout_seconds,
        )
    except TimeoutError:
        logger.warning(f"  Video model analysis timed out for {item.video.video_id}")
        return None
    except Exception as e:
        logger.warning(f"  Video model analysis failed for {item.video.video_id}: {e}")
        return None
    if result is None or not result.transcript:
        return None

    await save_transcript(
        db,
        query.org_id,
        item.db_id,
        TranscriptResult(
            segments=[
                CaptionSegment(
                    text=s.text,
                    start=s.start_seconds,
                    duration=max(s.end_seconds - s.start_seconds, 0.0),
                )
                for s in result.segments
            ],
            full_text=result.transcript,
            source=TranscriptSource.THIRD_PARTY,
        ),
    )

    topics = result.entities.topics
    moments = merge_adjacent_moments(
        [
            Moment(
                start_seconds=m.start_seconds,
                end_seconds=m.end_seconds,
                label=m.label,
                description=m.description,
                confidence=GEMINI_MOMENT_CONFIDENCE,
            )
            for m in result.key_moments
            if m.start_seconds < m.end_seconds
        ]
    )
    return AnalyzedVideo(
        video_id=item.db_id,
        relevance_score=GEMINI_BASE_SCORE,
        score_breakdown={"gemini": 1},
        summary=result.summary,
        why_relevant=f"Analyzed by AI. Mentions: {', '.join(topics) or 'sports content'}",
        moments=moments,
        entities={
            "people": result.entities.people,
            "teams": result.entities.teams,
            "events": [],
            "topics": topics,
        },
    )
