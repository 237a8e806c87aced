"""Query definition CRUD and read access to runs and their candidates."""

import logging
from collections import defaultdict
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.queries import (
    CandidateMomentRead,
    CandidateRead,
    QueryDefinitionCreate,
)
from app.schemas.audit_events import AuditEventType
from app.schemas.base import ScheduleType
from app.schemas.candidates import Candidate, CandidateMoment
from app.schemas.query_definitions import QueryDefinition
from app.schemas.query_runs import QueryRun
from app.schemas.youtube_videos import YouTubeVideo
from app.services.audit_service import record_audit_event
from app.services.scheduler_service import calculate_next_run
from app.services.sources.base import utcnow

logger = logging.getLogger(__name__)


async def create_query(
    db: AsyncSession, org_id: str, data: QueryDefinitionCreate
) -> QueryDefinition:
    now = utcnow()
    keywords = [k.strip() for k in data.keywords if k.strip()]
    if not keywords:
        raise ValueError("At least one non-empty keyword is required")

    query = QueryDefinition(
        org_id=org_id,
        name=data.name,
        description=data.description,
        sport=data.sport,
        keywords=keywords,
        channel_ids=data.channel_ids,
        recency_days=data.recency_days,
        max_results=data.max_results,
        is_scheduled=data.is_scheduled,
        schedule_type=data.schedule_type,
        schedule_cron=data.schedule_cron,
        schedule_timezone=data.schedule_timezone,
        refresh_interval=data.refresh_interval,
        created_at=now,
        updated_at=now,
    )
    if query.is_scheduled and query.schedule_type != ScheduleType.MANUAL:
        query.next_run_at = calculate_next_run(
            query.schedule_type,
            now,
            refresh_interval=query.refresh_interval,
            cron=query.schedule_cron,
            timezone=query.schedule_timezone,
        )

    async with db.begin():
        db.add(query)
        await db.flush()
        record_audit_event(
            db,
            org_id=org_id,
            event_type=AuditEventType.QUERY_CREATED,
            entity_type="QueryDefinition",
            entity_id=query.id,
            action=f'Created query "{query.name}"',
            details={"sport": query.sport.value, "keywords": keywords},
        )
    logger.info(f"Created query definition {query.id}")
    return query


async def list_queries(db: AsyncSession, org_id: str) -> list[QueryDefinition]:
    async with db.begin():
        result = await db.execute(
            select(QueryDefinition)
            .where(
                QueryDefinition.org_id == org_id,  # type: ignore[arg-type]
                QueryDefinition.deleted_at.is_(None),  # type: ignore[union-attr]
            )
            .order_by(QueryDefinition.created_at.desc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())


async def get_query(db: AsyncSession, query_definition_id: int) -> Optional[QueryDefinition]:
    async with db.begin():
        query = await db.get(QueryDefinition, query_definition_id)
    if query is None or query.deleted_at is not None:
        return None
    return query


async def get_query_run(db: AsyncSession, query_run_id: int) -> Optional[QueryRun]:
    async with db.begin():
        return await db.get(QueryRun, query_run_id)


async def list_run_candidates(db: AsyncSession, query_run_id: int) -> list[CandidateRead]:
    """Candidates of a run with video metadata and moments, best first."""
    async with db.begin():
        result = await db.execute(
            select(Candidate, YouTubeVideo)
            .join(YouTubeVideo, YouTubeVideo.id == Candidate.video_id)  # type: ignore[arg-type]
            .where(
                Candidate.query_run_id == query_run_id,  # type: ignore[arg-type]
                Candidate.deleted_at.is_(None),  # type: ignore[union-attr]
            )
            .order_by(Candidate.relevance_score.desc())  # type: ignore[attr-defined]
        )
        rows = result.all()
        candidate_ids = [c.id for c, _ in rows]
        moments_by_candidate: dict[int, list[CandidateMomentRead]] = defaultdict(list)
        if candidate_ids:
            moments = await db.execute(
                select(CandidateMoment)
                .where(CandidateMoment.candidate_id.in_(candidate_ids))  # type: ignore[attr-defined]
                .order_by(CandidateMoment.start_seconds)
            )
            for m in moments.scalars().all():
                moments_by_candidate[m.candidate_id].append(
                    CandidateMomentRead.model_validate(m, from_attributes=True)
                )

    return [
        CandidateRead(
            id=candidate.id,
            video_id=candidate.video_id,
            youtube_video_id=video.youtube_video_id,
            title=video.title,
            channel_title=video.channel_title,
            published_at=video.published_at,
            thumbnail_url=video.thumbnail_url,
            relevance_score=candidate.relevance_score,
            score_breakdown=candidate.score_breakdown or {},
            status=candidate.status,
            ai_summary=candidate.ai_summary,
            why_relevant=candidate.why_relevant,
            entities=candidate.entities or {},
            moments=moments_by_candidate.get(candidate.id, []),
        )
        for candidate, video in rows
    ]
