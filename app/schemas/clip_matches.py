"""Scored associations between news items and candidate clips."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class ClipMatchStatus(str, Enum):
    PENDING = "PENDING"
    MATCHED = "MATCHED"
    DISMISSED = "DISMISSED"


class ClipMatch(SQLModel, table=True):  # type: ignore[call-arg]
    __tablename__ = "clip_matches"
    __table_args__ = (
        UniqueConstraint("news_item_id", "candidate_id", name="uq_clip_matches_news_candidate"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    org_id: str = Field(index=True)
    news_item_id: int = Field(foreign_key="news_items.id", index=True)
    candidate_id: int = Field(foreign_key="candidates.id", index=True)
    match_score: float
    match_reason: str = Field(default="")
    status: ClipMatchStatus = Field(default=ClipMatchStatus.PENDING, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
