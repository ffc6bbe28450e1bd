"""In-memory async queue that runs subtitle jobs with a concurrency limit.

Work items are ``(job_id, mode)`` where mode is ``process`` or ``retry``.
"""

import asyncio
from os import getenv
from typing import Set, Tuple

from sqlalchemy import select

from toolbox_subtitles.config import settings
from toolbox_subtitles.database import AsyncSessionLocal
from toolbox_subtitles.logging_config import get_logger
from toolbox_subtitles.models.subtitle_job import TERMINAL_JOB_STATUSES, SubtitleJob
from toolbox_subtitles.services.subtitle_processing import (
    MODE_PROCESS,
    MODE_RETRY,
    process_subtitle_job,
)

STOP = "__STOP__"


class SubtitleJobQueue:
    def __init__(self, concurrency: int = 2):
        # Defer queue creation until start() to bind to the current event loop
        self._queue: "asyncio.Queue[Tuple[str, str]] | None" = None
        self._workers: list[asyncio.Task] = []
        self._running_ids: Set[str] = set()
        self._concurrency = concurrency
        self._started = False
        self._slot_lock: asyncio.Semaphore | None = None
        self._logger = get_logger(__name__)

    @property
    def started(self) -> bool:
        return self._started

    async def start(self):
        if self._started:
            return
        self._started = True
        self._queue = asyncio.Queue()
        self._slot_lock = asyncio.Semaphore(self._concurrency)
        for _ in range(self._concurrency):
            self._workers.append(asyncio.create_task(self._worker()))
        self._logger.info("Subtitle job queue started with %s workers", self._concurrency)

    async def stop(self):
        if self._queue is not None:
            for _ in self._workers:
                try:
                    await self._queue.put((STOP, MODE_PROCESS))
                except RuntimeError as exc:
                    if "Event loop is closed" in str(exc):
                        break
                    raise
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        self._started = False
        # Drop the queue so a new one will be created on next start()
        self._queue = None
        self._slot_lock = None
        self._logger.info("Subtitle job queue stopped")

    async def _worker(self):
        while True:
            assert self._queue is not None
            try:
                job_id, mode = await self._queue.get()
            except RuntimeError as exc:
                if "Event loop is closed" in str(exc):
                    break
                raise
            if job_id == STOP:
                break
            # Skip if already running (duplicate enqueue)
            if job_id in self._running_ids:
                self._queue.task_done()
                continue
            self._running_ids.add(job_id)
            assert self._slot_lock is not None
            try:
                self._logger.debug("Worker picked job %s (mode=%s)", job_id, mode)
                async with self._slot_lock:
                    async with AsyncSessionLocal() as db:
                        await process_subtitle_job(job_id, db, mode=mode)
                        await db.commit()
            except Exception:
                self._logger.exception("Unhandled error while running subtitle job %s", job_id)
            finally:
                self._running_ids.discard(job_id)
                self._queue.task_done()
                self._logger.debug("Worker finished job %s", job_id)

    async def enqueue(self, job_id: str, *, mode: str = MODE_PROCESS) -> None:
        if mode not in (MODE_PROCESS, MODE_RETRY):
            raise ValueError(f"Unknown job mode: {mode}")
        if job_id in self._running_ids:
            self._logger.debug("Job %s already running; skipping enqueue", job_id)
            return
        if not self._started:
            force_start = getenv("FORCE_QUEUE_START") == "1"
            if settings.is_testing and not force_start:
                # Tests start the queue explicitly so background work does not
                # race their database assertions.
                return
            await self.start()
        assert self._queue is not None
        try:
            await self._queue.put((job_id, mode))
            self._logger.info("Queued subtitle job %s (mode=%s)", job_id, mode)
        except RuntimeError as exc:
            if "Event loop is closed" in str(exc):
                return
            raise

    async def join(self) -> None:
        """Wait until every queued item has been processed."""
        if self._queue is not None:
            await self._queue.join()


# Global singleton for app lifetime
queue = SubtitleJobQueue(concurrency=settings.max_concurrent_jobs)


async def resume_pending_jobs(queue_obj: SubtitleJobQueue) -> int:
    """Re-enqueue jobs that were still running when the app stopped."""
    async with AsyncSessionLocal() as db:
        result = await db.execute(
            select(SubtitleJob.id)
            .where(SubtitleJob.status.notin_(TERMINAL_JOB_STATUSES))
            .order_by(SubtitleJob.created_at)
        )
        job_ids = result.scalars().all()

    for job_id in job_ids:
        await queue_obj.enqueue(str(job_id))

    return len(job_ids)
