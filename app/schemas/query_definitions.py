"""Saved video-discovery intents."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Column
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field

from app.schemas.base import ScheduleType, SoftDeleteMixin, Sport


class QueryDefinition(SoftDeleteMixin, table=True):  # type: ignore[call-arg]
    """A sport + keyword intent that the query run pipeline executes."""

    __tablename__ = "query_definitions"

    id: Optional[int] = Field(default=None, primary_key=True)
    org_id: str = Field(index=True)
    name: str
    description: Optional[str] = Field(default=None)
    sport: Sport = Field(index=True)
    keywords: list[str] = Field(default_factory=list, sa_column=Column(JSONB, nullable=False))
    channel_ids: list[str] = Field(
        default_factory=list, sa_column=Column(JSONB, nullable=False)
    )
    recency_days: int = Field(default=7)
    max_results: int = Field(default=50)
    is_active: bool = Field(default=True, index=True)

    is_scheduled: bool = Field(default=False, index=True)
    schedule_type: ScheduleType = Field(default=ScheduleType.MANUAL)
    schedule_cron: Optional[str] = Field(default=None)
    schedule_timezone: str = Field(default="UTC")
    refresh_interval: int = Field(default=60)
    next_run_at: Optional[datetime] = Field(default=None, index=True)
    last_run_at: Optional[datetime] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
