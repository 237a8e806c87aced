"""Pair high-importance news items with candidate clips.

Scoring is entity overlap, headline/video text similarity, temporal
proximity and a quality boost for strong candidates. Entity comparison goes
through an ``EntityMatcher`` so the loose substring heuristic can be swapped
for a stricter one without touching the formula.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.news import ClipMatchStats
from app.schemas.audit_events import AuditEventType
from app.schemas.base import Sport
from app.schemas.candidates import Candidate, CandidateStatus
from app.schemas.clip_matches import ClipMatch, ClipMatchStatus
from app.schemas.news_items import NewsItem
from app.schemas.query_definitions import QueryDefinition
from app.schemas.youtube_videos import YouTubeVideo
from app.services.audit_service import record_audit_event
from app.services.sources.base import utcnow

logger = logging.getLogger(__name__)

POOL_WINDOW = timedelta(days=7)
POOL_SIZE = 100
MIN_MATCH_SCORE = 0.3
MAX_MATCHES = 5
TEXT_SIMILARITY_FLOOR = 0.3
QUALITY_BOOST_THRESHOLD = 0.7
MANUAL_PAIR_REASON = "Manually paired by user"

STOP_WORDS = frozenset(
    """a an the and or but in on at to for of with by from as is was are were
    been be have has had do does did will would could should may might must
    shall can this that these those it its i you he she we they what which who
    whom how when where why""".split()
)
_PUNCT_RE = re.compile(r"[^\w\s]")


class EntityMatcher(Protocol):
    def count_matches(self, left: Sequence[str], right: Sequence[str]) -> float: ...


class SubstringEntityMatcher:
    """Exact case-insensitive match counts 1, containment either way counts 0.5.

    Loose on common surnames: "James" will partially match "LeBron James".
    """

    def count_matches(self, left: Sequence[str], right: Sequence[str]) -> float:
        rights = {r.lower() for r in right}
        matches = 0.0
        for item in {value.lower() for value in left}:
            if item in rights:
                matches += 1
            elif any(item in other or other in item for other in rights):
                matches += 0.5
        return matches


class StrictEntityMatcher:
    """Normalized full-string equality only."""

    @staticmethod
    def _normalize(value: str) -> str:
        return " ".join(_PUNCT_RE.sub("", value.lower()).split())

    def count_matches(self, left: Sequence[str], right: Sequence[str]) -> float:
        rights = {self._normalize(r) for r in right}
        return float(len({self._normalize(value) for value in left} & rights))


DEFAULT_MATCHER: EntityMatcher = SubstringEntityMatcher()


@dataclass(frozen=True, slots=True)
class NewsView:
    id: int
    org_id: str
    sport: Sport
    headline: str
    published_at: datetime
    teams: tuple[str, ...] = ()
    players: tuple[str, ...] = ()
    topics: tuple[str, ...] = ()

    @classmethod
    def from_row(cls, item: NewsItem) -> NewsView:
        assert item.id is not None
        return cls(
            id=item.id,
            org_id=item.org_id,
            sport=item.sport,
            headline=item.headline,
            published_at=item.published_at,
            teams=tuple(item.teams or ()),
            players=tuple(item.players or ()),
            topics=tuple(item.topics or ()),
        )


@dataclass(frozen=True, slots=True)
class CandidateView:
    id: int
    relevance_score: float
    video_title: str
    video_description: str
    video_published_at: datetime
    people: tuple[str, ...] = ()
    teams: tuple[str, ...] = ()
    topics: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ClipMatchResult:
    candidate_id: int
    score: float
    reason: str


def tokenize(text: str) -> set[str]:
    return {
        word
        for word in _PUNCT_RE.sub("", text.lower()).split()
        if len(word) > 2 and word not in STOP_WORDS
    }


def text_similarity(a: str, b: str) -> float:
    """Jaccard similarity of stopword-filtered token sets."""
    left, right = tokenize(a), tokenize(b)
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)


def temporal_bonus(news_published_at: datetime, video_published_at: datetime) -> tuple[float, str]:
    if news_published_at.date() == video_published_at.date():
        return 0.15, "Published same day"
    days = abs((news_published_at - video_published_at).total_seconds()) / 86400
    if days < 3:
        return 0.10, "Published within 3 days"
    if days < 7:
        return 0.05, "Published within a week"
    return 0.0, ""


def score_clip_match(
    news: NewsView,
    candidate: CandidateView,
    matcher: EntityMatcher = DEFAULT_MATCHER,
) -> ClipMatchResult:
    """Score one candidate against one news item, capped at 1.0."""
    score = 0.0
    reasons: list[str] = []

    team_matches = matcher.count_matches(news.teams, candidate.teams)
    if team_matches > 0:
        score += 0.25 * min(team_matches, 2)
        reasons.append(f"{team_matches:g} team match(es)")

    player_matches = matcher.count_matches(news.players, candidate.people)
    if player_matches > 0:
        score += 0.20 * min(player_matches, 3)
        reasons.append(f"{player_matches:g} player match(es)")

    topic_matches = matcher.count_matches(news.topics, candidate.topics)
    if topic_matches > 0:
        score += 0.15 * min(topic_matches, 2)
        reasons.append(f"{topic_matches:g} topic match(es)")

    similarity = text_similarity(
        news.headline, f"{candidate.video_title} {candidate.video_description}"
    )
    if similarity > TEXT_SIMILARITY_FLOOR:
        score += similarity * 0.25
        reasons.append(f"Text similarity: {round(similarity * 100)}%")

    bonus, reason = temporal_bonus(news.published_at, candidate.video_published_at)
    if bonus:
        score += bonus
        reasons.append(reason)

    if candidate.relevance_score > QUALITY_BOOST_THRESHOLD:
        score *= 1.1

    return ClipMatchResult(
        candidate_id=candidate.id,
        score=min(score, 1.0),
        reason="; ".join(reasons) or "Low relevance",
    )


def select_matches(
    news: NewsView,
    pool: Sequence[CandidateView],
    matcher: EntityMatcher = DEFAULT_MATCHER,
) -> list[ClipMatchResult]:
    """Keep candidates scoring above 0.3, best five first."""
    scored = [score_clip_match(news, c, matcher) for c in pool]
    accepted = [m for m in scored if m.score > MIN_MATCH_SCORE]
    accepted.sort(key=lambda m: m.score, reverse=True)
    return accepted[:MAX_MATCHES]


async def load_candidate_pool(db: AsyncSession, news: NewsView) -> list[CandidateView]:
    """Same-org, same-sport candidates whose video was published in the week
    before the news item, highest relevance first."""
    stmt = (
        select(Candidate, YouTubeVideo)
        .join(YouTubeVideo, YouTubeVideo.id == Candidate.video_id)  # type: ignore[arg-type]
        .join(QueryDefinition, QueryDefinition.id == Candidate.query_definition_id)  # type: ignore[arg-type]
        .where(
            Candidate.org_id == news.org_id,  # type: ignore[arg-type]
            Candidate.deleted_at.is_(None),  # type: ignore[union-attr]
            QueryDefinition.sport == news.sport,  # type: ignore[arg-type]
            YouTubeVideo.published_at >= news.published_at - POOL_WINDOW,  # type: ignore[arg-type]
            YouTubeVideo.published_at <= news.published_at,  # type: ignore[arg-type]
        )
        .order_by(Candidate.relevance_score.desc())  # type: ignore[attr-defined]
        .limit(POOL_SIZE)
    )
    result = await db.execute(stmt)
    pool: list[CandidateView] = []
    for candidate, video in result.all():
        entities = candidate.entities or {}
        pool.append(
            CandidateView(
                id=candidate.id,
                relevance_score=candidate.relevance_score,
                video_title=video.title,
                video_description=video.description or "",
                video_published_at=video.published_at,
                people=tuple(entities.get("people", ())),
                teams=tuple(entities.get("teams", ())),
                topics=tuple(entities.get("topics", ())),
            )
        )
    return pool


async def find_clips_for_news(
    db: AsyncSession,
    news_item_id: int,
    matcher: EntityMatcher = DEFAULT_MATCHER,
) -> list[ClipMatchResult]:
    """Raises LookupError when the news item does not exist."""
    async with db.begin():
        item = await db.get(NewsItem, news_item_id)
        if item is None:
            raise LookupError(f"News item not found: {news_item_id}")
        news = NewsView.from_row(item)
        pool = await load_candidate_pool(db, news)
    return select_matches(news, pool, matcher)


async def replace_clip_matches(
    db: AsyncSession,
    news_item_id: int,
    matches: Sequence[ClipMatchResult],
) -> None:
    """Swap the item's match set atomically and set ``is_paired`` to match it."""
    now = utcnow()
    async with db.begin():
        item = await db.get(NewsItem, news_item_id)
        if item is None:
            raise LookupError(f"News item not found: {news_item_id}")
        await db.execute(
            delete(ClipMatch).where(ClipMatch.news_item_id == news_item_id)  # type: ignore[arg-type]
        )
        db.add_all(
            [
                ClipMatch(
                    org_id=item.org_id,
                    news_item_id=news_item_id,
                    candidate_id=m.candidate_id,
                    match_score=m.score,
                    match_reason=m.reason,
                    status=ClipMatchStatus.PENDING,
                    created_at=now,
                    updated_at=now,
                )
                for m in matches
            ]
        )
        item.is_paired = len(matches) > 0
        db.add(item)


async def process_clip_pair(
    db: AsyncSession,
    news_item_id: int,
    matcher: EntityMatcher = DEFAULT_MATCHER,
) -> list[ClipMatchResult]:
    matches = await find_clips_for_news(db, news_item_id, matcher)
    await replace_clip_matches(db, news_item_id, matches)
    logger.info(f"News item {news_item_id}: {len(matches)} clip match(es)")
    return matches


async def pair_manually(db: AsyncSession, news_item_id: int, candidate_id: int) -> int:
    """Create or promote a MATCHED pairing at full score.

    Returns:
        The clip match id.
    """
    now = utcnow()
    async with db.begin():
        item = await db.get(NewsItem, news_item_id)
        if item is None:
            raise LookupError("News item not found")
        candidate = await db.get(Candidate, candidate_id)
        if candidate is None or candidate.deleted_at is not None or candidate.org_id != item.org_id:
            raise LookupError("Candidate not found")

        stmt = (
            insert(ClipMatch)
            .values(
                org_id=item.org_id,
                news_item_id=news_item_id,
                candidate_id=candidate_id,
                match_score=1.0,
                match_reason=MANUAL_PAIR_REASON,
                status=ClipMatchStatus.MATCHED,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_update(
                constraint="uq_clip_matches_news_candidate",
                set_={
                    "match_score": 1.0,
                    "match_reason": MANUAL_PAIR_REASON,
                    "status": ClipMatchStatus.MATCHED,
                    "updated_at": now,
                },
            )
            .returning(ClipMatch.__table__.c.id)  # type: ignore[attr-defined]
        )
        clip_match_id = (await db.execute(stmt)).scalar_one()
        item.is_paired = True
        db.add(item)
        record_audit_event(
            db,
            org_id=item.org_id,
            event_type=AuditEventType.CLIP_MATCH_CREATED,
            entity_type="ClipMatch",
            entity_id=clip_match_id,
            action=f'Manually paired clip to news: "{item.headline[:30]}..."',
            details={"news_item_id": news_item_id, "candidate_id": candidate_id},
        )
    return clip_match_id


async def unpair(db: AsyncSession, news_item_id: int, candidate_id: int) -> None:
    """Delete a pairing; clears ``is_paired`` when it was the last one."""
    async with db.begin():
        result = await db.execute(
            select(ClipMatch).where(
                ClipMatch.news_item_id == news_item_id,  # type: ignore[arg-type]
                ClipMatch.candidate_id == candidate_id,  # type: ignore[arg-type]
            )
        )
        match = result.scalar_one_or_none()
        if match is None:
            raise LookupError("Clip match not found")
        item = await db.get(NewsItem, news_item_id)
        await db.delete(match)
        await db.flush()

        remaining = await db.scalar(
            select(func.count())
            .select_from(ClipMatch)
            .where(ClipMatch.news_item_id == news_item_id)  # type: ignore[arg-type]
        )
        headline = item.headline if item else ""
        if item is not None and not remaining:
            item.is_paired = False
            db.add(item)
        record_audit_event(
            db,
            org_id=match.org_id,
            event_type=AuditEventType.CLIP_MATCH_DELETED,
            entity_type="ClipMatch",
            entity_id=match.id,
            action=f'Unpaired clip from news: "{headline[:30]}..."',
            details={"news_item_id": news_item_id, "candidate_id": candidate_id},
        )


async def confirm_match(db: AsyncSession, clip_match_id: int) -> None:
    async with db.begin():
        match = await db.get(ClipMatch, clip_match_id)
        if match is None:
            raise LookupError("Clip match not found")
        match.status = ClipMatchStatus.MATCHED
        match.updated_at = utcnow()
        db.add(match)
        record_audit_event(
            db,
            org_id=match.org_id,
            event_type=AuditEventType.CLIP_MATCH_UPDATED,
            entity_type="ClipMatch",
            entity_id=clip_match_id,
            action="Confirmed clip match",
        )


async def dismiss_news_item(db: AsyncSession, news_item_id: int) -> int:
    """Dismiss every match for a news item.

    Returns:
        Number of matches dismissed.
    """
    async with db.begin():
        item = await db.get(NewsItem, news_item_id)
        if item is None:
            raise LookupError("News item not found")
        result = await db.execute(
            update(ClipMatch)
            .where(ClipMatch.news_item_id == news_item_id)  # type: ignore[arg-type]
            .values(status=ClipMatchStatus.DISMISSED, updated_at=utcnow())
        )
        record_audit_event(
            db,
            org_id=item.org_id,
            event_type=AuditEventType.CLIP_MATCH_UPDATED,
            entity_type="NewsItem",
            entity_id=news_item_id,
            action=f'Dismissed news item: "{item.headline[:50]}..."',
        )
    return result.rowcount or 0


async def update_candidate_status(
    db: AsyncSession, candidate_id: int, status: CandidateStatus
) -> Candidate:
    async with db.begin():
        candidate = await db.get(Candidate, candidate_id)
        if candidate is None or candidate.deleted_at is not None:
            raise LookupError("Candidate not found")
        previous = candidate.status
        candidate.status = status
        candidate.updated_at = utcnow()
        db.add(candidate)
        record_audit_event(
            db,
            org_id=candidate.org_id,
            event_type=AuditEventType.CANDIDATE_STATUS_CHANGED,
            entity_type="Candidate",
            entity_id=candidate_id,
            action=f"Changed candidate status from {previous.value} to {status.value}",
            details={"from": previous.value, "to": status.value},
        )
    return candidate


async def get_unmatched_news_items(
    db: AsyncSession, org_id: str, limit: int = 50
) -> list[NewsItem]:
    """Processed, unpaired items at or above the pairing threshold."""
    async with db.begin():
        result = await db.execute(
            select(NewsItem)
            .where(
                NewsItem.org_id == org_id,  # type: ignore[arg-type]
                NewsItem.is_processed.is_(True),  # type: ignore[attr-defined]
                NewsItem.is_paired.is_(False),  # type: ignore[attr-defined]
                NewsItem.importance_score >= settings.clip_pair_importance_threshold,  # type: ignore[operator]
            )
            .order_by(NewsItem.importance_score.desc())  # type: ignore[union-attr]
            .limit(limit)
        )
        return list(result.scalars().all())


async def get_clip_match_stats(db: AsyncSession, org_id: str) -> ClipMatchStats:
    async with db.begin():
        total_news = await db.scalar(
            select(func.count())
            .select_from(NewsItem)
            .where(
                NewsItem.org_id == org_id,  # type: ignore[arg-type]
                NewsItem.is_processed.is_(True),  # type: ignore[attr-defined]
            )
        ) or 0
        rows = await db.execute(
            select(ClipMatch.status, func.count())
            .where(ClipMatch.org_id == org_id)  # type: ignore[arg-type]
            .group_by(ClipMatch.status)
        )
        counts = {status: count for status, count in rows.all()}

    matched = counts.get(ClipMatchStatus.MATCHED, 0)
    return ClipMatchStats(
        total_news=total_news,
        matched=matched,
        pending=counts.get(ClipMatchStatus.PENDING, 0),
        dismissed=counts.get(ClipMatchStatus.DISMISSED, 0),
        match_rate=(matched / total_news) * 100 if total_news else 0.0,
    )
