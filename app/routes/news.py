"""News feed API routes.

Provides endpoints for:
- Fetching the news feed, most important first
- Reviewing clip matches for a news item
- Manual pairing, unpairing, confirming and dismissing
- Clip match statistics
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.news import (
    ClipMatchRead,
    ClipMatchStats,
    NewsFeed,
    NewsItemRead,
    PairRequest,
)
from app.schemas.base import Sport
from app.services.clip_pairing_service import (
    confirm_match,
    dismiss_news_item,
    get_clip_match_stats,
    get_unmatched_news_items,
    pair_manually,
    unpair,
)
from app.services.news_service import get_clip_matches, get_news_feed, get_news_item
from app.utils.db_async import get_session

router = APIRouter(prefix="/api/news", tags=["news"])


@router.get("", response_model=NewsFeed)
async def list_news(
    sport: Optional[Sport] = Query(default=None, description="Filter by sport"),
    paired: Optional[bool] = Query(default=None, description="Filter by pairing state"),
    min_score: int = Query(default=0, ge=0, le=100, description="Minimum importance"),
    limit: int = Query(default=50, ge=1, le=100, description="Items per page"),
    offset: int = Query(default=0, ge=0, description="Number of items to skip"),
    db: AsyncSession = Depends(get_session),
) -> NewsFeed:
    """Fetch paginated news feed ordered by importance, then recency."""
    return await get_news_feed(
        db,
        settings.default_org_id,
        sport=sport,
        is_paired=paired,
        min_score=min_score,
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=ClipMatchStats)
async def clip_match_stats(
    db: AsyncSession = Depends(get_session),
) -> ClipMatchStats:
    return await get_clip_match_stats(db, settings.default_org_id)


@router.get("/unmatched", response_model=list[NewsItemRead])
async def list_unmatched(
    limit: int = Query(default=50, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
) -> list[NewsItemRead]:
    """High-importance processed items still waiting for a clip."""
    items = await get_unmatched_news_items(db, settings.default_org_id, limit)
    return [NewsItemRead.model_validate(i, from_attributes=True) for i in items]


@router.post("/matches/{clip_match_id}/confirm", status_code=204)
async def confirm_clip_match(
    clip_match_id: int,
    db: AsyncSession = Depends(get_session),
) -> None:
    try:
        await confirm_match(db, clip_match_id)
    except LookupError:
        raise HTTPException(status_code=404, detail="Clip match not found")


@router.get("/{news_item_id}", response_model=NewsItemRead)
async def read_news_item(
    news_item_id: int,
    db: AsyncSession = Depends(get_session),
) -> NewsItemRead:
    item = await get_news_item(db, news_item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="News item not found")
    return item


@router.get("/{news_item_id}/matches", response_model=list[ClipMatchRead])
async def list_matches(
    news_item_id: int,
    db: AsyncSession = Depends(get_session),
) -> list[ClipMatchRead]:
    if await get_news_item(db, news_item_id) is None:
        raise HTTPException(status_code=404, detail="News item not found")
    return await get_clip_matches(db, news_item_id)


@router.post("/{news_item_id}/pair", status_code=201)
async def pair_clip(
    news_item_id: int,
    payload: PairRequest,
    db: AsyncSession = Depends(get_session),
) -> dict[str, int]:
    """Pair a candidate with a news item by hand (MATCHED, score 1.0)."""
    try:
        clip_match_id = await pair_manually(db, news_item_id, payload.candidate_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return {"clip_match_id": clip_match_id}


@router.delete("/{news_item_id}/pair/{candidate_id}", status_code=204)
async def unpair_clip(
    news_item_id: int,
    candidate_id: int,
    db: AsyncSession = Depends(get_session),
) -> None:
    try:
        await unpair(db, news_item_id, candidate_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.post("/{news_item_id}/dismiss")
async def dismiss(
    news_item_id: int,
    db: AsyncSession = Depends(get_session),
) -> dict[str, int]:
    try:
        dismissed = await dismiss_news_item(db, news_item_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return {"dismissed": dismissed}
