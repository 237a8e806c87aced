"""Query definition API routes.

Provides endpoints for:
- Creating and listing query definitions
- Triggering a run and polling its progress
- Reviewing a run's candidates and changing their status
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.errors import CooldownError, EnqueueError
from app.models.queries import (
    CandidateRead,
    CandidateStatusUpdate,
    QueryDefinitionCreate,
    QueryDefinitionRead,
    QueryRunRead,
)
from app.schemas.base import TriggerType
from app.services.clip_pairing_service import update_candidate_status
from app.services.job_queue import JobQueue, get_job_queue
from app.services.query_run_service import trigger_query_run
from app.services.query_service import (
    create_query,
    get_query,
    get_query_run,
    list_queries,
    list_run_candidates,
)
from app.utils.db_async import get_session

router = APIRouter(prefix="/api/queries", tags=["queries"])


@router.get("", response_model=list[QueryDefinitionRead])
async def list_query_definitions(
    db: AsyncSession = Depends(get_session),
) -> list[QueryDefinitionRead]:
    queries = await list_queries(db, settings.default_org_id)
    return [QueryDefinitionRead.model_validate(q, from_attributes=True) for q in queries]


@router.post("", response_model=QueryDefinitionRead, status_code=201)
async def create_query_definition(
    payload: QueryDefinitionCreate,
    db: AsyncSession = Depends(get_session),
) -> QueryDefinitionRead:
    try:
        query = await create_query(db, settings.default_org_id, payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return QueryDefinitionRead.model_validate(query, from_attributes=True)


@router.get("/runs/{run_id}", response_model=QueryRunRead)
async def read_query_run(
    run_id: int,
    db: AsyncSession = Depends(get_session),
) -> QueryRunRead:
    """Current status and progress of a run."""
    run = await get_query_run(db, run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Query run not found")
    return QueryRunRead.model_validate(run, from_attributes=True)


@router.get("/runs/{run_id}/candidates", response_model=list[CandidateRead])
async def read_run_candidates(
    run_id: int,
    db: AsyncSession = Depends(get_session),
) -> list[CandidateRead]:
    if await get_query_run(db, run_id) is None:
        raise HTTPException(status_code=404, detail="Query run not found")
    return await list_run_candidates(db, run_id)


@router.patch("/candidates/{candidate_id}", response_model=CandidateStatusUpdate)
async def patch_candidate_status(
    candidate_id: int,
    payload: CandidateStatusUpdate,
    db: AsyncSession = Depends(get_session),
) -> CandidateStatusUpdate:
    try:
        candidate = await update_candidate_status(db, candidate_id, payload.status)
    except LookupError:
        raise HTTPException(status_code=404, detail="Candidate not found")
    return CandidateStatusUpdate(status=candidate.status)


@router.get("/{query_id}", response_model=QueryDefinitionRead)
async def read_query_definition(
    query_id: int,
    db: AsyncSession = Depends(get_session),
) -> QueryDefinitionRead:
    query = await get_query(db, query_id)
    if query is None:
        raise HTTPException(status_code=404, detail="Query not found")
    return QueryDefinitionRead.model_validate(query, from_attributes=True)


@router.post("/{query_id}/run", response_model=QueryRunRead, status_code=202)
async def run_query(
    query_id: int,
    db: AsyncSession = Depends(get_session),
    queue: JobQueue = Depends(get_job_queue),
) -> QueryRunRead:
    """Queue a manual run. 429 while a recent run is still in flight."""
    try:
        run = await trigger_query_run(db, queue, query_id, TriggerType.MANUAL)
    except LookupError:
        raise HTTPException(status_code=404, detail="Query not found")
    except CooldownError as exc:
        raise HTTPException(status_code=429, detail=str(exc))
    except EnqueueError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return QueryRunRead.model_validate(run, from_attributes=True)
