"""Source API routes.

Provides endpoints for:
- Listing adapter types and their config forms
- Creating, reading and updating sources
- Triggering a manual fetch
- Fetch-run health stats
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.errors import ConfigValidationError, CooldownError, EnqueueError
from app.models.sources import (
    FetchRunRead,
    SourceCreate,
    SourceHealth,
    SourceRead,
    SourceTypeInfo,
    SourceUpdate,
    SourceWriteResponse,
)
from app.schemas.base import Sport, TriggerType
from app.services.job_queue import JobQueue, get_job_queue
from app.services.source_fetch_service import get_source_health, trigger_source_fetch
from app.services.source_service import (
    create_source,
    get_source,
    list_sources,
    to_read,
    update_source,
)
from app.services.sources.registry import get_all_source_type_info
from app.utils.db_async import get_session

router = APIRouter(prefix="/api/sources", tags=["sources"])


def _invalid_config(exc: ConfigValidationError) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={"errors": exc.errors, "warnings": exc.warnings},
    )


@router.get("/types", response_model=list[SourceTypeInfo])
async def list_source_types() -> list[SourceTypeInfo]:
    """Adapter metadata used to render source config forms."""
    return get_all_source_type_info()


@router.get("", response_model=list[SourceRead])
async def list_all_sources(
    sport: Optional[Sport] = Query(default=None, description="Filter by sport"),
    db: AsyncSession = Depends(get_session),
) -> list[SourceRead]:
    sources = await list_sources(db, settings.default_org_id, sport)
    return [to_read(s) for s in sources]


@router.post("", response_model=SourceWriteResponse, status_code=201)
async def create_new_source(
    payload: SourceCreate,
    db: AsyncSession = Depends(get_session),
) -> SourceWriteResponse:
    """Validate the adapter config, then persist the source."""
    try:
        source, warnings = await create_source(db, settings.default_org_id, payload)
    except ConfigValidationError as exc:
        raise _invalid_config(exc)
    return SourceWriteResponse(source=to_read(source), warnings=warnings)


@router.get("/{source_id}", response_model=SourceRead)
async def read_source(
    source_id: int,
    db: AsyncSession = Depends(get_session),
) -> SourceRead:
    source = await get_source(db, source_id)
    if source is None:
        raise HTTPException(status_code=404, detail="Source not found")
    return to_read(source)


@router.patch("/{source_id}", response_model=SourceWriteResponse)
async def patch_source(
    source_id: int,
    payload: SourceUpdate,
    db: AsyncSession = Depends(get_session),
) -> SourceWriteResponse:
    try:
        source, warnings = await update_source(db, source_id, payload)
    except LookupError:
        raise HTTPException(status_code=404, detail="Source not found")
    except ConfigValidationError as exc:
        raise _invalid_config(exc)
    return SourceWriteResponse(source=to_read(source), warnings=warnings)


@router.post("/{source_id}/run", response_model=FetchRunRead, status_code=202)
async def run_source(
    source_id: int,
    db: AsyncSession = Depends(get_session),
    queue: JobQueue = Depends(get_job_queue),
) -> FetchRunRead:
    """Queue a manual fetch. 429 while a run is in flight or inside the cooldown."""
    try:
        run = await trigger_source_fetch(db, queue, source_id, TriggerType.MANUAL)
    except LookupError:
        raise HTTPException(status_code=404, detail="Source not found")
    except CooldownError as exc:
        raise HTTPException(status_code=429, detail=str(exc))
    except EnqueueError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return FetchRunRead.model_validate(run, from_attributes=True)


@router.get("/{source_id}/health", response_model=SourceHealth)
async def source_health(
    source_id: int,
    db: AsyncSession = Depends(get_session),
) -> SourceHealth:
    try:
        return await get_source_health(db, source_id)
    except LookupError:
        raise HTTPException(status_code=404, detail="Source not found")
