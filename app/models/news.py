"""Response models for the news feed and clip matches."""

from datetime import datetime
from typing import Any, Optional

from sqlmodel import SQLModel

from app.schemas.base import Sport
from app.schemas.clip_matches import ClipMatchStatus
from app.schemas.news_items import NewsItemType


class NewsItemRead(SQLModel):
    id: int
    source_id: int
    source_name: Optional[str] = None
    type: NewsItemType
    sport: Sport
    headline: str
    content: Optional[str] = None
    url: Optional[str] = None
    image_url: Optional[str] = None
    author: Optional[str] = None
    published_at: datetime
    teams: list[str] = []
    players: list[str] = []
    topics: list[str] = []
    importance_score: Optional[int] = None
    score_breakdown: dict[str, Any] = {}
    is_processed: bool
    is_paired: bool


class NewsFeed(SQLModel):
    items: list[NewsItemRead]
    total: int
    has_more: bool


class ClipMatchRead(SQLModel):
    id: int
    news_item_id: int
    candidate_id: int
    match_score: float
    match_reason: str
    status: ClipMatchStatus
    youtube_video_id: str
    video_title: str
    channel_title: str
    thumbnail_url: Optional[str] = None
    relevance_score: float


class PairRequest(SQLModel):
    candidate_id: int


class ClipMatchStats(SQLModel):
    total_news: int
    matched: int
    pending: int
    dismissed: int
    match_rate: float  # percent of processed news with a confirmed match
