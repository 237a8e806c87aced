"""External content sources (feeds, scrapers, sportsbook and stats APIs)."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import Column
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field

from app.schemas.base import ScheduleType, SoftDeleteMixin, Sport


class SourceType(str, Enum):
    """Adapter kinds. Each value resolves to one adapter in the registry."""

    RSS_FEED = "RSS_FEED"
    WEBSITE_SCRAPE = "WEBSITE_SCRAPE"
    ESPN_API = "ESPN_API"
    SPORTSGRID_API = "SPORTSGRID_API"
    DRAFTKINGS_API = "DRAFTKINGS_API"
    DRAFTKINGS_SCRAPE = "DRAFTKINGS_SCRAPE"


class SourceStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    ERROR = "ERROR"
    RATE_LIMITED = "RATE_LIMITED"


class Source(SoftDeleteMixin, table=True):  # type: ignore[call-arg]
    """A configured external source.

    The ``config`` blob is adapter-specific and is validated by the adapter
    before it is stored.
    """

    __tablename__ = "sources"

    id: Optional[int] = Field(default=None, primary_key=True)
    org_id: str = Field(index=True)
    name: str
    type: SourceType = Field(index=True)
    sport: Sport = Field(index=True)
    config: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSONB, nullable=False),
    )
    status: SourceStatus = Field(default=SourceStatus.ACTIVE, index=True)

    # Scheduling
    is_scheduled: bool = Field(default=False, index=True)
    schedule_type: ScheduleType = Field(default=ScheduleType.HOURLY)
    schedule_cron: Optional[str] = Field(default=None)
    schedule_timezone: str = Field(default="UTC")
    refresh_interval: int = Field(default=60)  # minutes, used by HOURLY
    next_fetch_at: Optional[datetime] = Field(default=None, index=True)
    last_scheduled_at: Optional[datetime] = Field(default=None)

    # Fetch bookkeeping
    last_fetch_at: Optional[datetime] = Field(default=None)
    last_success_at: Optional[datetime] = Field(default=None)
    last_error_at: Optional[datetime] = Field(default=None)
    last_error_message: Optional[str] = Field(default=None)
    fetch_count: int = Field(default=0)
    error_count: int = Field(default=0)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
