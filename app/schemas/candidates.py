"""Scored videos produced by query runs, with their highlight moments."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import CheckConstraint, Column, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from app.schemas.base import SoftDeleteMixin


class CandidateStatus(str, Enum):
    """Editorial lifecycle: NEW -> SHORTLISTED | DISMISSED | EXPORTED."""

    NEW = "NEW"
    SHORTLISTED = "SHORTLISTED"
    DISMISSED = "DISMISSED"
    EXPORTED = "EXPORTED"


class Candidate(SoftDeleteMixin, table=True):  # type: ignore[call-arg]
    __tablename__ = "candidates"
    __table_args__ = (
        UniqueConstraint("video_id", "query_run_id", name="uq_candidates_video_run"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    org_id: str = Field(index=True)
    video_id: int = Field(foreign_key="youtube_videos.id", index=True)
    query_run_id: int = Field(foreign_key="query_runs.id", index=True)
    query_definition_id: int = Field(foreign_key="query_definitions.id", index=True)

    relevance_score: float = Field(index=True)
    score_breakdown: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column(JSONB, nullable=False)
    )
    status: CandidateStatus = Field(default=CandidateStatus.NEW, index=True)
    ai_summary: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    why_relevant: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    # {"people": [...], "teams": [...], "events": [...], "topics": [...]}
    entities: dict[str, list[str]] = Field(
        default_factory=dict, sa_column=Column(JSONB, nullable=False)
    )

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class CandidateMoment(SQLModel, table=True):  # type: ignore[call-arg]
    __tablename__ = "candidate_moments"
    __table_args__ = (
        CheckConstraint("start_seconds < end_seconds", name="ck_candidate_moments_range"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    org_id: str = Field(index=True)
    candidate_id: int = Field(foreign_key="candidates.id", index=True)
    label: str
    start_seconds: float
    end_seconds: float
    confidence: float = Field(default=0.5)
    supporting_quote: Optional[str] = Field(
        default=None, sa_column=Column(Text, nullable=True)
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)
