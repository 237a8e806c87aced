"""Job handlers for the background queue.

Each handler opens its own session; payloads carry ids only.
"""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.services.clip_pairing_service import process_clip_pair
from app.services.importance_scoring_service import process_importance_score
from app.services.job_queue import (
    CLIP_PAIR,
    IMPORTANCE_SCORE,
    QUERY_RUN,
    SOURCE_FETCH,
    JobQueue,
)
from app.services.query_run_service import process_query_run
from app.services.source_fetch_service import process_source_fetch
from app.utils.db_async import SessionLocal

logger = logging.getLogger(__name__)


def register_default_handlers(
    queue: JobQueue,
    session_factory: async_sessionmaker[AsyncSession] = SessionLocal,
) -> None:
    """Attach the four pipeline handlers with their configured concurrency."""

    async def handle_source_fetch(payload: dict[str, Any]) -> None:
        async with session_factory() as db:
            await process_source_fetch(db, int(payload["fetch_run_id"]), queue)

    async def handle_query_run(payload: dict[str, Any]) -> None:
        async with session_factory() as db:
            await process_query_run(db, int(payload["query_run_id"]))

    async def handle_importance_score(payload: dict[str, Any]) -> None:
        async with session_factory() as db:
            await process_importance_score(db, queue, int(payload["news_item_id"]))

    async def handle_clip_pair(payload: dict[str, Any]) -> None:
        async with session_factory() as db:
            await process_clip_pair(db, int(payload["news_item_id"]))

    handlers = [
        (SOURCE_FETCH, handle_source_fetch, settings.source_fetch_concurrency),
        (QUERY_RUN, handle_query_run, settings.query_run_concurrency),
        (IMPORTANCE_SCORE, handle_importance_score, settings.importance_score_concurrency),
        (CLIP_PAIR, handle_clip_pair, settings.clip_pair_concurrency),
    ]
    for channel, handler, concurrency in handlers:
        if not queue.is_registered(channel):
            queue.register(channel, handler, concurrency)
    logger.info("Registered job handlers")
