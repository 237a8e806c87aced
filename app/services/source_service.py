"""Source CRUD: config validation, schedule bookkeeping and audit rows."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.sources import SourceCreate, SourceRead, SourceUpdate
from app.schemas.audit_events import AuditEventType
from app.schemas.base import Sport
from app.schemas.sources import Source, SourceStatus
from app.services.audit_service import record_audit_event
from app.services.scheduler_service import calculate_next_run
from app.services.sources.base import utcnow
from app.services.sources.registry import validate_source_config

logger = logging.getLogger(__name__)

_SCHEDULE_FIELDS = {
    "is_scheduled",
    "schedule_type",
    "schedule_cron",
    "schedule_timezone",
    "refresh_interval",
    "status",
}


def to_read(source: Source) -> SourceRead:
    return SourceRead.model_validate(source, from_attributes=True)


def _next_fetch_at(source: Source):
    if not source.is_scheduled or source.status != SourceStatus.ACTIVE:
        return None
    return calculate_next_run(
        source.schedule_type,
        utcnow(),
        refresh_interval=source.refresh_interval,
        cron=source.schedule_cron,
        timezone=source.schedule_timezone,
    )


async def create_source(
    db: AsyncSession, org_id: str, data: SourceCreate
) -> tuple[Source, list[str]]:
    """Validate and persist a new source.

    Returns:
        (source, config warnings)

    Raises:
        ConfigValidationError: the adapter rejected the config
    """
    warnings = validate_source_config(data.type, data.config)
    now = utcnow()
    source = Source(
        org_id=org_id,
        name=data.name,
        type=data.type,
        sport=data.sport,
        config=data.config,
        is_scheduled=data.is_scheduled,
        schedule_type=data.schedule_type,
        schedule_cron=data.schedule_cron,
        schedule_timezone=data.schedule_timezone,
        refresh_interval=data.refresh_interval,
        created_at=now,
        updated_at=now,
    )
    source.next_fetch_at = _next_fetch_at(source)

    async with db.begin():
        db.add(source)
        await db.flush()
        record_audit_event(
            db,
            org_id=org_id,
            event_type=AuditEventType.SOURCE_CREATED,
            entity_type="Source",
            entity_id=source.id,
            action=f'Created source "{source.name}"',
            details={"type": source.type.value, "sport": source.sport.value},
        )
    logger.info(f"Created source {source.id} ({source.type.value})")
    return source, warnings


async def list_sources(
    db: AsyncSession, org_id: str, sport: Optional[Sport] = None
) -> list[Source]:
    stmt = (
        select(Source)
        .where(
            Source.org_id == org_id,  # type: ignore[arg-type]
            Source.deleted_at.is_(None),  # type: ignore[union-attr]
        )
        .order_by(Source.name)
    )
    if sport is not None:
        stmt = stmt.where(Source.sport == sport)  # type: ignore[arg-type]
    async with db.begin():
        result = await db.execute(stmt)
        return list(result.scalars().all())


async def get_source(db: AsyncSession, source_id: int) -> Optional[Source]:
    async with db.begin():
        source = await db.get(Source, source_id)
    if source is None or source.deleted_at is not None:
        return None
    return source


async def update_source(
    db: AsyncSession, source_id: int, data: SourceUpdate
) -> tuple[Source, list[str]]:
    """Apply a partial update. A changed config is re-validated first.

    Raises:
        LookupError: no such source
        ConfigValidationError: the adapter rejected the new config
    """
    changes = data.model_dump(exclude_unset=True)
    warnings: list[str] = []

    async with db.begin():
        source = await db.get(Source, source_id)
        if source is None or source.deleted_at is not None:
            raise LookupError(f"Source {source_id} not found")
        if "config" in changes and changes["config"] is not None:
            warnings = validate_source_config(source.type, changes["config"])

        for key, value in changes.items():
            if value is not None or key == "schedule_cron":
                setattr(source, key, value)
        if _SCHEDULE_FIELDS & changes.keys():
            source.next_fetch_at = _next_fetch_at(source)
        source.updated_at = utcnow()
        db.add(source)
        record_audit_event(
            db,
            org_id=source.org_id,
            event_type=AuditEventType.SOURCE_UPDATED,
            entity_type="Source",
            entity_id=source_id,
            action=f'Updated source "{source.name}"',
            details={"fields": sorted(changes)},
        )
    return source, warnings
