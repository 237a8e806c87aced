"""Audit trail helpers.

Writers only stage the row on the session; the caller's transaction decides
whether it is persisted alongside the change it describes.
"""

from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.schemas.audit_events import AuditEvent, AuditEventType


def record_audit_event(
    db: AsyncSession,
    *,
    org_id: str,
    event_type: AuditEventType,
    entity_type: str,
    entity_id: Optional[int],
    action: str,
    details: Optional[dict[str, Any]] = None,
) -> AuditEvent:
    event = AuditEvent(
        org_id=org_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        details=details,
    )
    db.add(event)
    return event


async def list_audit_events(
    db: AsyncSession,
    *,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    limit: int = 50,
) -> list[AuditEvent]:
    """Most recent events first, optionally for one entity."""
    stmt = select(AuditEvent).order_by(AuditEvent.created_at.desc())  # type: ignore[attr-defined]
    if entity_type is not None:
        stmt = stmt.where(AuditEvent.entity_type == entity_type)  # type: ignore[arg-type]
    if entity_id is not None:
        stmt = stmt.where(AuditEvent.entity_id == entity_id)  # type: ignore[arg-type]
    async with db.begin():
        result = await db.execute(stmt.limit(limit))
        return list(result.scalars().all())
