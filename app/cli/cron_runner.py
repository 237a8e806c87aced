"""Standalone cron runner for scheduled fetches and query runs.

This script is designed to run as a scheduled machine with no long-lived
worker: it runs one scheduler tick, then drains the in-process job queue so
every fetch, query run, importance score and clip pairing it started
finishes before exit.

Usage:
    python -m app.cli.cron_runner

Exit codes:
    0 - Success
    1 - Failure (check logs for details)
"""

import asyncio
import logging
import sys
from datetime import datetime, timezone

from app.services.job_queue import job_queue
from app.services.scheduler_service import run_scheduler_once
from app.services.sources.registry import dispose_adapters
from app.services.workers import register_default_handlers
from app.utils.db_async import SessionLocal, dispose_engine

# Configure logging for cron context
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("cron_runner")


async def main() -> int:
    """Run one scheduler tick and wait for the resulting jobs.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    start_time = datetime.now(timezone.utc)
    logger.info("Starting scheduler tick")

    try:
        register_default_handlers(job_queue)
        await job_queue.start()

        async with SessionLocal() as db:
            result = await run_scheduler_once(db, job_queue)

        logger.info(
            f"Tick queued {result.sources_triggered} source fetches and "
            f"{result.queries_triggered} query runs "
            f"({result.sources_skipped + result.queries_skipped} skipped)"
        )
        for error in result.errors:
            logger.warning(f"Scheduler error: {error}")

        await job_queue.drain()

        elapsed = (datetime.now(timezone.utc) - start_time).total_seconds()
        stats = job_queue.stats()
        failed = sum(channel["failed"] for channel in stats.values())
        logger.info(f"Jobs drained in {elapsed:.1f}s; {failed} failed")
        return 0

    except Exception as e:
        elapsed = (datetime.now(timezone.utc) - start_time).total_seconds()
        logger.error(f"Cron run failed after {elapsed:.1f}s: {e}", exc_info=True)
        return 1

    finally:
        await job_queue.stop()
        await dispose_adapters()
        await dispose_engine()


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
