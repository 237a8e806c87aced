"""Normalized news items produced by source adapters."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import Column, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from app.schemas.base import Sport


class NewsItemType(str, Enum):
    """Content classification assigned by adapters."""

    BREAKING = "BREAKING"
    TRADE = "TRADE"
    INJURY = "INJURY"
    BETTING_LINE = "BETTING_LINE"
    GAME_RESULT = "GAME_RESULT"
    RUMOR = "RUMOR"
    SCHEDULE = "SCHEDULE"
    ANALYSIS = "ANALYSIS"


class NewsItem(SQLModel, table=True):  # type: ignore[call-arg]
    """A news item from a source.

    Deduplicated on (org_id, source_id, external_id). Entities, importance
    score and pairing state are filled in after ingestion.
    """

    __tablename__ = "news_items"
    __table_args__ = (
        UniqueConstraint(
            "org_id", "source_id", "external_id", name="uq_news_items_org_source_external"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    org_id: str = Field(index=True)
    source_id: int = Field(foreign_key="sources.id", index=True)
    external_id: str

    type: NewsItemType = Field(default=NewsItemType.ANALYSIS)
    sport: Sport = Field(index=True)
    headline: str
    content: Optional[str] = Field(default=None)
    url: Optional[str] = Field(default=None)
    image_url: Optional[str] = Field(default=None)
    author: Optional[str] = Field(default=None)
    published_at: datetime = Field(index=True)

    # Filled by importance scoring
    teams: list[str] = Field(default_factory=list, sa_column=Column(JSONB, nullable=False))
    players: list[str] = Field(default_factory=list, sa_column=Column(JSONB, nullable=False))
    topics: list[str] = Field(default_factory=list, sa_column=Column(JSONB, nullable=False))
    importance_score: Optional[int] = Field(default=None, index=True)
    score_breakdown: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column(JSONB, nullable=False)
    )
    is_processed: bool = Field(default=False, index=True)
    is_paired: bool = Field(default=False, index=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
