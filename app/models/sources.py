"""Request/response models for sources and source fetch runs."""

from datetime import datetime
from typing import Any, Optional

from sqlmodel import Field, SQLModel

from app.schemas.base import ScheduleType, Sport, TriggerType
from app.schemas.source_fetch_runs import FetchRunStatus
from app.schemas.sources import SourceStatus, SourceType


class ConfigFieldOption(SQLModel):
    value: str
    label: str


class ConfigField(SQLModel):
    """One input in an adapter's config form. Dotted names are nested keys."""

    name: str
    label: str
    type: str  # text | url | number | select | textarea | json
    required: bool = False
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    options: Optional[list[ConfigFieldOption]] = None
    default_value: Optional[Any] = None


class SourceTypeInfo(SQLModel):
    """Display and capability metadata for one adapter kind."""

    type: SourceType
    name: str
    description: str
    config_fields: list[ConfigField]
    recommended_refresh_interval: int  # minutes
    supports_odds: bool = False
    supports_results: bool = False


class SourceCreate(SQLModel):
    name: str
    type: SourceType
    sport: Sport
    config: dict[str, Any] = Field(default_factory=dict)
    is_scheduled: bool = False
    schedule_type: ScheduleType = ScheduleType.HOURLY
    schedule_cron: Optional[str] = None
    schedule_timezone: str = "UTC"
    refresh_interval: int = Field(default=60, ge=1)


class SourceUpdate(SQLModel):
    """Partial update; unset fields are left alone."""

    name: Optional[str] = None
    sport: Optional[Sport] = None
    config: Optional[dict[str, Any]] = None
    status: Optional[SourceStatus] = None
    is_scheduled: Optional[bool] = None
    schedule_type: Optional[ScheduleType] = None
    schedule_cron: Optional[str] = None
    schedule_timezone: Optional[str] = None
    refresh_interval: Optional[int] = Field(default=None, ge=1)


class SourceRead(SQLModel):
    id: int
    name: str
    type: SourceType
    sport: Sport
    config: dict[str, Any]
    status: SourceStatus
    is_scheduled: bool
    schedule_type: ScheduleType
    schedule_cron: Optional[str] = None
    schedule_timezone: str
    refresh_interval: int
    next_fetch_at: Optional[datetime] = None
    last_fetch_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_error_at: Optional[datetime] = None
    last_error_message: Optional[str] = None
    fetch_count: int
    error_count: int
    created_at: datetime
    updated_at: datetime


class SourceWriteResponse(SQLModel):
    """A created or updated source plus any non-blocking config warnings."""

    source: SourceRead
    warnings: list[str] = []


class FetchRunRead(SQLModel):
    id: int
    source_id: int
    status: FetchRunStatus
    triggered_by: TriggerType
    items_fetched: int
    new_items: int
    results_created: int
    odds_created: int
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    created_at: datetime


class SourceHealth(SQLModel):
    """Fetch-run statistics for one source."""

    source_id: int
    status: SourceStatus
    total_runs: int
    runs_by_status: dict[str, int]
    succeeded_24h: int
    failed_24h: int
    success_rate: float  # percent
    last_success_at: Optional[datetime] = None
    last_error_at: Optional[datetime] = None
    last_error_message: Optional[str] = None
    recent_runs: list[FetchRunRead]


class FetchOutcome(SQLModel):
    """Result of processing one source fetch run."""

    fetch_run_id: int
    status: FetchRunStatus
    items_fetched: int = 0
    new_items: int = 0
    results_created: int = 0
    odds_created: int = 0
    new_news_item_ids: list[int] = []
