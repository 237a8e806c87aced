"""In-process asyncio job queue with named channels.

Each channel owns an ``asyncio.Queue`` and a fixed number of worker tasks.
Jobs are keyed by id: enqueueing an id that is still pending or running is a
no-op, so a retried trigger for the same run never produces a second job.
Failed jobs are retried with exponential backoff, holding their worker slot
while they wait.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.config import settings
from app.errors import EnqueueError

logger = logging.getLogger(__name__)

SOURCE_FETCH = "source-fetch"
QUERY_RUN = "query-run"
IMPORTANCE_SCORE = "importance-score"
CLIP_PAIR = "clip-pair"

Handler = Callable[[dict[str, Any]], Awaitable[Any]]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(slots=True)
class Job:
    channel: str
    job_id: str
    payload: dict[str, Any]
    attempts: int = 0


@dataclass(slots=True)
class _Channel:
    handler: Handler
    concurrency: int
    queue: asyncio.Queue[Job] = field(default_factory=asyncio.Queue)
    workers: list[asyncio.Task[None]] = field(default_factory=list)
    completed: int = 0
    failed: int = 0


class JobQueue:
    def __init__(
        self,
        *,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.max_attempts = max_attempts or settings.job_max_attempts
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.job_backoff_seconds
        )
        self._sleep: Sleep = sleep or asyncio.sleep
        self._channels: dict[str, _Channel] = {}
        self._known: set[tuple[str, str]] = set()
        self._running = False
        self._closed = False

    @property
    def running(self) -> bool:
        return self._running

    def register(self, channel: str, handler: Handler, concurrency: int = 1) -> None:
        if channel in self._channels:
            raise ValueError(f"Channel already registered: {channel}")
        self._channels[channel] = _Channel(handler=handler, concurrency=max(concurrency, 1))
        if self._running:
            self._spawn_workers(channel)

    def is_registered(self, channel: str) -> bool:
        return channel in self._channels

    def is_pending(self, channel: str, job_id: Any) -> bool:
        return (channel, str(job_id)) in self._known

    async def enqueue(
        self,
        channel: str,
        payload: dict[str, Any],
        job_id: Optional[Any] = None,
    ) -> bool:
        """Queue a job.

        Returns:
            True when queued, False when the same job id is already pending
            or running on that channel.

        Raises:
            EnqueueError: unknown channel or the queue is shut down.
        """
        if self._closed:
            raise EnqueueError("Job queue is shut down")
        entry = self._channels.get(channel)
        if entry is None:
            raise EnqueueError(f"Unknown job channel: {channel}")

        key = str(job_id) if job_id is not None else uuid.uuid4().hex
        if (channel, key) in self._known:
            logger.debug(f"Job {channel}:{key} already queued; skipping")
            return False

        self._known.add((channel, key))
        entry.queue.put_nowait(Job(channel=channel, job_id=key, payload=payload))
        return True

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._closed = False
        for channel in self._channels:
            self._spawn_workers(channel)
        logger.info(f"Job queue started with channels: {', '.join(self._channels) or 'none'}")

    async def stop(self) -> None:
        """Cancel workers. Jobs still queued are dropped and their ids forgotten."""
        self._closed = True
        self._running = False
        workers = [w for entry in self._channels.values() for w in entry.workers]
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        dropped = 0
        for entry in self._channels.values():
            entry.workers.clear()
            while not entry.queue.empty():
                entry.queue.get_nowait()
                entry.queue.task_done()
                dropped += 1
        self._known.clear()
        logger.info(f"Job queue stopped ({dropped} queued job(s) dropped)")

    async def drain(self) -> None:
        """Run until every channel is idle, including jobs enqueued by handlers."""
        if not self._running:
            await self.start()
        while True:
            for entry in list(self._channels.values()):
                await entry.queue.join()
            if all(entry.queue.empty() for entry in self._channels.values()) and not self._known:
                return

    def stats(self) -> dict[str, dict[str, int]]:
        return {
            name: {
                "queued": entry.queue.qsize(),
                "completed": entry.completed,
                "failed": entry.failed,
            }
            for name, entry in self._channels.items()
        }

    def _spawn_workers(self, channel: str) -> None:
        entry = self._channels[channel]
        while len(entry.workers) < entry.concurrency:
            index = len(entry.workers)
            entry.workers.append(
                asyncio.create_task(self._worker(channel), name=f"{channel}-worker-{index}")
            )

    async def _worker(self, channel: str) -> None:
        entry = self._channels[channel]
        while True:
            job = await entry.queue.get()
            try:
                await self._run_job(entry, job)
            finally:
                self._known.discard((job.channel, job.job_id))
                entry.queue.task_done()

    def _retrying(self, job: Job) -> AsyncRetrying:
        def log_retry(state: RetryCallState) -> None:
            logger.warning(
                f"Job {job.channel}:{job.job_id} attempt {state.attempt_number} failed: "
                f"{state.outcome.exception()}; retrying in {state.next_action.sleep:.1f}s"
            )

        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_seconds),
            retry=retry_if_exception_type(Exception),
            sleep=self._sleep,
            before_sleep=log_retry,
            reraise=True,
        )

    async def _run_job(self, entry: _Channel, job: Job) -> None:
        try:
            async for attempt in self._retrying(job):
                with attempt:
                    job.attempts = attempt.retry_state.attempt_number
                    await entry.handler(job.payload)
        except Exception as exc:
            entry.failed += 1
            logger.error(
                f"Job {job.channel}:{job.job_id} failed after {job.attempts} attempt(s): {exc}"
            )
            return
        entry.completed += 1


job_queue = JobQueue()


def get_job_queue() -> JobQueue:
    """FastAPI dependency returning the process-wide queue."""
    return job_queue
