"""News feed retrieval service.

Handles fetching news items and their clip matches for display.
"""

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.news import ClipMatchRead, NewsFeed, NewsItemRead
from app.schemas.base import Sport
from app.schemas.candidates import Candidate
from app.schemas.clip_matches import ClipMatch
from app.schemas.news_items import NewsItem
from app.schemas.sources import Source
from app.schemas.youtube_videos import YouTubeVideo


def _to_read(item: NewsItem, source_name: Optional[str]) -> NewsItemRead:
    return NewsItemRead(
        id=item.id or 0,
        source_id=item.source_id,
        source_name=source_name,
        type=item.type,
        sport=item.sport,
        headline=item.headline,
        content=item.content,
        url=item.url,
        image_url=item.image_url,
        author=item.author,
        published_at=item.published_at,
        teams=list(item.teams or []),
        players=list(item.players or []),
        topics=list(item.topics or []),
        importance_score=item.importance_score,
        score_breakdown=dict(item.score_breakdown or {}),
        is_processed=item.is_processed,
        is_paired=item.is_paired,
    )


async def get_news_feed(
    db: AsyncSession,
    org_id: str,
    *,
    sport: Optional[Sport] = None,
    is_paired: Optional[bool] = None,
    min_score: int = 0,
    limit: int = 50,
    offset: int = 0,
) -> NewsFeed:
    """Fetch a page of news items, most important first.

    Args:
        db: Async database session
        org_id: Tenant key
        sport: Optional sport filter
        is_paired: Optional filter on pairing state
        min_score: Minimum importance score; unscored items are excluded when > 0
        limit: Maximum items to return
        offset: Number of items to skip

    Returns:
        NewsFeed with items, total and whether more pages exist
    """
    filters = [NewsItem.org_id == org_id]  # type: ignore[arg-type]
    if sport is not None:
        filters.append(NewsItem.sport == sport)  # type: ignore[arg-type]
    if is_paired is not None:
        filters.append(NewsItem.is_paired.is_(is_paired))  # type: ignore[attr-defined]
    if min_score > 0:
        filters.append(NewsItem.importance_score >= min_score)  # type: ignore[operator]

    items_query = (
        select(NewsItem, Source.name)
        .join(Source, Source.id == NewsItem.source_id)  # type: ignore[arg-type]
        .where(*filters)
        .order_by(
            NewsItem.importance_score.desc().nulls_last(),  # type: ignore[union-attr]
            NewsItem.published_at.desc(),  # type: ignore[attr-defined]
        )
        .limit(limit)
        .offset(offset)
    )
    count_query = select(func.count()).select_from(NewsItem).where(*filters)

    async with db.begin():
        total = await db.scalar(count_query) or 0
        result = await db.execute(items_query)
        items = [_to_read(item, source_name) for item, source_name in result.all()]

    return NewsFeed(items=items, total=total, has_more=offset + len(items) < total)


async def get_news_item(db: AsyncSession, news_item_id: int) -> Optional[NewsItemRead]:
    async with db.begin():
        result = await db.execute(
            select(NewsItem, Source.name)
            .join(Source, Source.id == NewsItem.source_id)  # type: ignore[arg-type]
            .where(NewsItem.id == news_item_id)  # type: ignore[arg-type]
        )
        row = result.first()
    if row is None:
        return None
    item, source_name = row
    return _to_read(item, source_name)


async def get_clip_matches(db: AsyncSession, news_item_id: int) -> list[ClipMatchRead]:
    """Matches for one news item, best score first."""
    stmt = (
        select(ClipMatch, Candidate, YouTubeVideo)
        .join(Candidate, Candidate.id == ClipMatch.candidate_id)  # type: ignore[arg-type]
        .join(YouTubeVideo, YouTubeVideo.id == Candidate.video_id)  # type: ignore[arg-type]
        .where(ClipMatch.news_item_id == news_item_id)  # type: ignore[arg-type]
        .order_by(ClipMatch.match_score.desc())  # type: ignore[attr-defined]
    )
    async with db.begin():
        result = await db.execute(stmt)
        rows = result.all()

    return [
        ClipMatchRead(
            id=match.id or 0,
            news_item_id=match.news_item_id,
            candidate_id=match.candidate_id,
            match_score=match.match_score,
            match_reason=match.match_reason,
            status=match.status,
            youtube_video_id=video.youtube_video_id,
            video_title=video.title,
            channel_title=video.channel_title,
            thumbnail_url=video.thumbnail_url,
            relevance_score=candidate.relevance_score,
        )
        for match, candidate, video in rows
    ]
