"""Per-video analysis for query runs: scoring, moment derivation, persistence."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Optional, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.schemas.candidates import Candidate, CandidateMoment, CandidateStatus
from app.schemas.youtube_videos import TranscriptSegment, YouTubeVideo
from app.services.scoring_service import (
    Embedder,
    ScoringInput,
    calculate_relevance_score,
)
from app.services.sources.base import utcnow
from app.services.transcript_service import SegmentLike, TranscriptChunk, chunk_transcript
from app.services.video_analysis_service import TranscriptAnalysis

logger = logging.getLogger(__name__)

AI_SCORE_THRESHOLD = 0.4
MERGE_GAP_SECONDS = 10.0
MAX_MOMENT_SECONDS = 90.0
METADATA_MIN_SCORE = 0.2


class TranscriptAnalyzer(Protocol):
    async def analyze_transcript(
        self, transcript: str, keywords: list[str], sport: str, title: str, channel: str
    ) -> Optional[TranscriptAnalysis]: ...


@dataclass(frozen=True, slots=True)
class AnalysisConfig:
    use_ai: bool = True
    use_embeddings: bool = True
    max_moments: int = 5
    min_relevance_score: float = 0.3


@dataclass(frozen=True, slots=True)
class Moment:
    start_seconds: float
    end_seconds: float
    label: str
    description: str = ""
    confidence: float = 0.5


@dataclass(slots=True)
class AnalyzedVideo:
    video_id: int
    relevance_score: float
    score_breakdown: dict[str, Any] = field(default_factory=dict)
    summary: Optional[str] = None
    why_relevant: Optional[str] = None
    moments: list[Moment] = field(default_factory=list)
    entities: dict[str, list[str]] = field(
        default_factory=lambda: {"people": [], "teams": [], "events": [], "topics": []}
    )


@dataclass(frozen=True, slots=True)
class VideoView:
    """The video fields analysis needs, detached from the session."""

    id: int
    title: str
    description: str
    channel_title: str
    published_at: datetime
    view_count: Optional[int] = None
    like_count: Optional[int] = None
    duration_seconds: Optional[int] = None

    @classmethod
    def from_row(cls, video: YouTubeVideo) -> VideoView:
        assert video.id is not None
        return cls(
            id=video.id,
            title=video.title,
            description=video.description or "",
            channel_title=video.channel_title,
            published_at=video.published_at,
            view_count=video.view_count,
            like_count=video.like_count,
            duration_seconds=video.duration_seconds,
        )


def extract_keyword_moments(
    chunks: Sequence[TranscriptChunk], keywords: list[str], max_moments: int = 5
) -> list[Moment]:
    """Rank transcript chunks by how many keywords they mention."""
    if not keywords:
        return []
    scored: list[tuple[int, Moment]] = []
    for chunk in chunks:
        lower = chunk.text.lower()
        matched = [k for k in keywords if k.lower() in lower]
        if not matched or chunk.start_seconds >= chunk.end_seconds:
            continue
        scored.append(
            (
                len(matched),
                Moment(
                    start_seconds=chunk.start_seconds,
                    end_seconds=chunk.end_seconds,
                    label=matched[0],
                    description=chunk.text[:200],
                    confidence=len(matched) / len(keywords),
                ),
            )
        )
    # stable sort keeps transcript order among equal counts
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [moment for _, moment in scored[:max_moments]]


def merge_adjacent_moments(
    moments: Sequence[Moment],
    gap_threshold: float = MERGE_GAP_SECONDS,
    max_duration: float = MAX_MOMENT_SECONDS,
) -> list[Moment]:
    """Merge moments separated by at most ``gap_threshold`` seconds.

    Merged moments keep the max confidence and joined labels. Any moment
    longer than ``max_duration`` is cut to exactly that length from its start.
    """
    if not moments:
        return []
    ordered = sorted(moments, key=lambda m: m.start_seconds)
    merged: list[Moment] = []
    current = ordered[0]
    for nxt in ordered[1:]:
        if nxt.start_seconds - current.end_seconds <= gap_threshold:
            current = replace(
                current,
                end_seconds=max(current.end_seconds, nxt.end_seconds),
                label=f"{current.label} + {nxt.label}",
                description=f"{current.description}\n---\n{nxt.description}",
                confidence=max(current.confidence, nxt.confidence),
            )
        else:
            merged.append(current)
            current = nxt
    merged.append(current)

    return [
        replace(m, end_seconds=m.start_seconds + max_duration)
        if m.end_seconds - m.start_seconds > max_duration
        else m
        for m in merged
    ]


def _valid_moments(moments: Sequence[Moment]) -> list[Moment]:
    return [
        replace(m, confidence=min(max(m.confidence, 0.0), 1.0))
        for m in moments
        if math.isfinite(m.start_seconds)
        and math.isfinite(m.end_seconds)
        and m.start_seconds < m.end_seconds
    ]


async def analyze_transcript_content(
    video: VideoView,
    full_text: str,
    segments: Sequence[SegmentLike],
    keywords: list[str],
    sport: str,
    config: AnalysisConfig = AnalysisConfig(),
    *,
    analyzer: Optional[TranscriptAnalyzer] = None,
    embedder: Optional[Embedder] = None,
    now: Optional[datetime] = None,
) -> Optional[AnalyzedVideo]:
    """Full analysis of a video that has a transcript.

    Returns None when the heuristic score is below ``min_relevance_score``.
    The AI analyzer only runs for scores of at least 0.4; when it returns an
    estimate, the final score is the mean of both.
    """
    total, breakdown = await calculate_relevance_score(
        ScoringInput(
            transcript=full_text,
            video_title=video.title,
            channel_name=video.channel_title,
            published_at=video.published_at,
            view_count=video.view_count,
            like_count=video.like_count,
            duration_seconds=video.duration_seconds,
        ),
        keywords,
        sport,
        use_embeddings=config.use_embeddings,
        embedder=embedder,
        now=now,
    )
    if total < config.min_relevance_score:
        logger.debug(f"Video {video.id} below threshold ({total:.2f})")
        return None

    ai: Optional[TranscriptAnalysis] = None
    if config.use_ai and analyzer is not None and total >= AI_SCORE_THRESHOLD:
        try:
            ai = await asyncio.wait_for(
                analyzer.analyze_transcript(
                    full_text, keywords, sport, video.title, video.channel_title
                ),
                timeout=settings.gemini_timeout_seconds,
            )
        except TimeoutError:
            logger.warning(
                f"AI analysis timed out for video {video.id} "
                f"after {settings.gemini_timeout_seconds:.0f}s"
            )
        except Exception as e:
            logger.warning(f"AI analysis failed for video {video.id}: {e}")

    if ai is not None and ai.key_moments:
        moments = [
            Moment(
                start_seconds=m.start_seconds,
                end_seconds=m.end_seconds,
                label=m.label,
                description=m.description,
                confidence=m.confidence,
            )
            for m in ai.key_moments[: config.max_moments]
        ]
    else:
        moments = extract_keyword_moments(
            chunk_transcript(segments), keywords, config.max_moments
        )

    score = total
    if ai is not None:
        score = (total + min(max(ai.relevance_score, 0.0), 1.0)) / 2
        breakdown["ai_relevance"] = ai.relevance_score

    return AnalyzedVideo(
        video_id=video.id,
        relevance_score=score,
        score_breakdown=breakdown,
        summary=ai.summary if ai else None,
        why_relevant=ai.why_relevant if ai else None,
        moments=merge_adjacent_moments(_valid_moments(moments)),
        entities=ai.entities.model_dump()
        if ai
        else {"people": [], "teams": [], "events": [], "topics": []},
    )


async def analyze_video(
    db: AsyncSession,
    video_id: int,
    transcript_id: int,
    full_text: str,
    keywords: list[str],
    sport: str,
    config: AnalysisConfig = AnalysisConfig(),
    *,
    analyzer: Optional[TranscriptAnalyzer] = None,
    embedder: Optional[Embedder] = None,
) -> Optional[AnalyzedVideo]:
    """Load a stored video and its segments, then run full analysis."""
    async with db.begin():
        video = await db.get(YouTubeVideo, video_id)
        if video is None:
            return None
        view = VideoView.from_row(video)
        result = await db.execute(
            select(TranscriptSegment)
            .where(TranscriptSegment.transcript_id == transcript_id)  # type: ignore[arg-type]
            .order_by(TranscriptSegment.start_seconds)
        )
        segments = list(result.scalars().all())

    return await analyze_transcript_content(
        view, full_text, segments, keywords, sport, config,
        analyzer=analyzer, embedder=embedder,
    )


def analyze_video_metadata_only(
    video: VideoView,
    keywords: list[str],
    sport: str,
    now: Optional[datetime] = None,
) -> Optional[AnalyzedVideo]:
    """Cheap score from title, description, views and age; no moments.

    Weighted 0.5 keywords / 0.25 engagement / 0.25 recency. Returns None
    below 0.2.
    """
    text = f"{video.title} {video.description}".lower()
    matched = [k for k in keywords if k.lower() in text]
    keyword_score = len(matched) / len(keywords) if keywords else 0.0

    engagement_score = 0.5
    if video.view_count and video.view_count > 0:
        engagement_score = min(math.log10(video.view_count) / 7, 1.0)

    age_days = ((now or utcnow()) - video.published_at).total_seconds() / 86400
    if age_days <= 1:
        recency_score = 1.0
    elif age_days <= 7:
        recency_score = 0.8
    elif age_days <= 14:
        recency_score = 0.6
    elif age_days <= 30:
        recency_score = 0.4
    else:
        recency_score = 0.5

    score = keyword_score * 0.5 + engagement_score * 0.25 + recency_score * 0.25
    if score < METADATA_MIN_SCORE:
        return None

    return AnalyzedVideo(
        video_id=video.id,
        relevance_score=min(score, 1.0),
        score_breakdown={
            "keyword_score": keyword_score,
            "engagement_score": engagement_score,
            "recency_score": recency_score,
        },
        summary=f"Video about {sport}: {video.title}",
        why_relevant=(
            f"Contains keywords: {', '.join(matched)}" if matched else f"Related to {sport} content"
        ),
        entities={"people": [], "teams": [], "events": [], "topics": matched},
    )


def rank_candidates(candidates: Sequence[AnalyzedVideo], top_n: int = 100) -> list[AnalyzedVideo]:
    return sorted(candidates, key=lambda c: c.relevance_score, reverse=True)[:top_n]


async def save_analysis_results(
    db: AsyncSession,
    org_id: str,
    query_run_id: int,
    query_definition_id: int,
    analyses: Sequence[AnalyzedVideo],
) -> list[int]:
    """Persist ranked candidates and their moments in one transaction.

    Returns:
        Candidate ids in rank order.
    """
    ids: list[int] = []
    now = utcnow()
    async with db.begin():
        for analysis in analyses:
            candidate = Candidate(
                org_id=org_id,
                video_id=analysis.video_id,
                query_run_id=query_run_id,
                query_definition_id=query_definition_id,
                relevance_score=analysis.relevance_score,
                score_breakdown=analysis.score_breakdown,
                status=CandidateStatus.NEW,
                ai_summary=analysis.summary,
                why_relevant=analysis.why_relevant,
                entities=analysis.entities,
                created_at=now,
                updated_at=now,
            )
            db.add(candidate)
            await db.flush()
            assert candidate.id is not None
            ids.append(candidate.id)
            db.add_all(
                [
                    CandidateMoment(
                        org_id=org_id,
                        candidate_id=candidate.id,
                        label=m.label,
                        start_seconds=m.start_seconds,
                        end_seconds=m.end_seconds,
                        confidence=m.confidence,
                        supporting_quote=m.description,
                    )
                    for m in analysis.moments
                ]
            )
    return ids
