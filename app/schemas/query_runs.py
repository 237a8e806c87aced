"""One row per execution of the query run pipeline."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel

from app.schemas.base import TriggerType


class QueryRunStatus(str, Enum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


IN_FLIGHT_QUERY_STATUSES = (QueryRunStatus.QUEUED, QueryRunStatus.RUNNING)


class QueryRun(SQLModel, table=True):  # type: ignore[call-arg]
    __tablename__ = "query_runs"

    id: Optional[int] = Field(default=None, primary_key=True)
    org_id: str = Field(index=True)
    query_definition_id: int = Field(foreign_key="query_definitions.id", index=True)
    status: QueryRunStatus = Field(default=QueryRunStatus.QUEUED, index=True)
    triggered_by: TriggerType = Field(default=TriggerType.MANUAL)

    progress: int = Field(default=0)  # 0-100
    progress_message: Optional[str] = Field(default=None)

    videos_fetched: int = Field(default=0)
    transcripts_fetched: int = Field(default=0)
    videos_processed: int = Field(default=0)
    candidates_produced: int = Field(default=0)
    error_message: Optional[str] = Field(default=None)

    started_at: Optional[datetime] = Field(default=None)
    finished_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
