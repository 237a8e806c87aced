"""One row per attempt to fetch a source."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Index
from sqlmodel import Field, SQLModel

from app.schemas.base import TriggerType


class FetchRunStatus(str, Enum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


IN_FLIGHT_FETCH_STATUSES = (FetchRunStatus.QUEUED, FetchRunStatus.RUNNING)


class SourceFetchRun(SQLModel, table=True):  # type: ignore[call-arg]
    __tablename__ = "source_fetch_runs"
    __table_args__ = (
        Index("ix_source_fetch_runs_source_status", "source_id", "status"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    source_id: int = Field(foreign_key="sources.id", index=True)
    status: FetchRunStatus = Field(default=FetchRunStatus.QUEUED)
    triggered_by: TriggerType = Field(default=TriggerType.SCHEDULED)

    items_fetched: int = Field(default=0)
    new_items: int = Field(default=0)
    results_created: int = Field(default=0)
    odds_created: int = Field(default=0)
    error_message: Optional[str] = Field(default=None)

    started_at: Optional[datetime] = Field(default=None)
    finished_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
