"""Request/response models for query definitions, runs and candidates."""

from datetime import datetime
from typing import Any, Optional

from sqlmodel import Field, SQLModel

from app.schemas.base import ScheduleType, Sport, TriggerType
from app.schemas.candidates import CandidateStatus
from app.schemas.query_runs import QueryRunStatus


class QueryDefinitionCreate(SQLModel):
    name: str
    description: Optional[str] = None
    sport: Sport
    keywords: list[str] = Field(min_length=1)
    channel_ids: list[str] = []
    recency_days: int = Field(default=7, ge=1, le=365)
    max_results: int = Field(default=50, ge=1, le=500)
    is_scheduled: bool = False
    schedule_type: ScheduleType = ScheduleType.MANUAL
    schedule_cron: Optional[str] = None
    schedule_timezone: str = "UTC"
    refresh_interval: int = Field(default=60, ge=1)


class QueryDefinitionRead(SQLModel):
    id: int
    name: str
    description: Optional[str] = None
    sport: Sport
    keywords: list[str]
    channel_ids: list[str]
    recency_days: int
    max_results: int
    is_active: bool
    is_scheduled: bool
    schedule_type: ScheduleType
    schedule_cron: Optional[str] = None
    schedule_timezone: str
    refresh_interval: int
    next_run_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None
    created_at: datetime


class QueryRunRead(SQLModel):
    """Run state, polled by clients to follow progress."""

    id: int
    query_definition_id: int
    status: QueryRunStatus
    triggered_by: TriggerType
    progress: int
    progress_message: Optional[str] = None
    videos_fetched: int
    transcripts_fetched: int
    videos_processed: int
    candidates_produced: int
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    created_at: datetime


class CandidateMomentRead(SQLModel):
    id: int
    label: str
    start_seconds: float
    end_seconds: float
    confidence: float
    supporting_quote: Optional[str] = None


class CandidateRead(SQLModel):
    id: int
    video_id: int
    youtube_video_id: str
    title: str
    channel_title: str
    published_at: datetime
    thumbnail_url: Optional[str] = None
    relevance_score: float
    score_breakdown: dict[str, Any]
    status: CandidateStatus
    ai_summary: Optional[str] = None
    why_relevant: Optional[str] = None
    entities: dict[str, list[str]]
    moments: list[CandidateMomentRead] = []


class CandidateStatusUpdate(SQLModel):
    status: CandidateStatus
