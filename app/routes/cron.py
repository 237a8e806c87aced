"""Cron trigger for deployments driven by an external scheduler."""

import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.scheduler import SchedulerTickResult
from app.services.job_queue import JobQueue, get_job_queue
from app.services.scheduler_service import run_scheduler_once
from app.utils.db_async import get_session

router = APIRouter(prefix="/api/cron", tags=["cron"])


def require_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    """Require ``Authorization: Bearer <cron_secret>`` when a secret is configured."""
    if not settings.cron_secret:
        return
    expected = f"Bearer {settings.cron_secret}"
    if authorization is None or not hmac.compare_digest(authorization, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.post(
    "/tick",
    response_model=SchedulerTickResult,
    dependencies=[Depends(require_cron_secret)],
)
async def cron_tick(
    db: AsyncSession = Depends(get_session),
    queue: JobQueue = Depends(get_job_queue),
) -> SchedulerTickResult:
    """Run one scheduler pass over due sources and queries."""
    return await run_scheduler_once(db, queue)
