"""Response models for scheduler ticks."""

from datetime import datetime

from sqlmodel import SQLModel


class SchedulerTickResult(SQLModel):
    """Counts from one pass over due sources and query definitions."""

    ran_at: datetime
    sources_due: int = 0
    sources_triggered: int = 0
    sources_skipped: int = 0
    queries_due: int = 0
    queries_triggered: int = 0
    queries_skipped: int = 0
    errors: list[str] = []
