"""Append-only audit trail for runs and editorial actions."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import Column
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel


class AuditEventType(str, Enum):
    SOURCE_CREATED = "SOURCE_CREATED"
    SOURCE_UPDATED = "SOURCE_UPDATED"
    SOURCE_FETCH_STARTED = "SOURCE_FETCH_STARTED"
    QUERY_CREATED = "QUERY_CREATED"
    QUERY_RUN_STARTED = "QUERY_RUN_STARTED"
    CANDIDATE_STATUS_CHANGED = "CANDIDATE_STATUS_CHANGED"
    CLIP_MATCH_CREATED = "CLIP_MATCH_CREATED"
    CLIP_MATCH_UPDATED = "CLIP_MATCH_UPDATED"
    CLIP_MATCH_DELETED = "CLIP_MATCH_DELETED"


class AuditEvent(SQLModel, table=True):  # type: ignore[call-arg]
    __tablename__ = "audit_events"

    id: Optional[int] = Field(default=None, primary_key=True)
    org_id: str = Field(index=True)
    event_type: AuditEventType = Field(index=True)
    entity_type: str
    entity_id: Optional[int] = Field(default=None)
    action: str
    # "metadata" is reserved on declarative classes
    details: Optional[dict[str, Any]] = Field(
        default=None, sa_column=Column(JSONB, nullable=True)
    )
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
