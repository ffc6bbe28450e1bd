"""In-process publish/subscribe channel for subtitle job progress."""

import asyncio
import logging
from collections import defaultdict
from typing import Dict, Set

from toolbox_subtitles.schemas.subtitles import SubtitleProgressUpdate

logger = logging.getLogger(__name__)


class ProgressBroker:
    """Fan progress updates out to subscribers grouped by job id.

    Publishing never blocks: a subscriber whose queue is full misses the update.
    """

    def __init__(self, max_queue_size: int = 100):
        self._groups: Dict[str, Set["asyncio.Queue[SubtitleProgressUpdate]"]] = defaultdict(set)
        self._max_queue_size = max_queue_size

    def subscribe(self, job_id: str) -> "asyncio.Queue[SubtitleProgressUpdate]":
        queue: "asyncio.Queue[SubtitleProgressUpdate]" = asyncio.Queue(self._max_queue_size)
        self._groups[job_id].add(queue)
        logger.debug("Subscriber joined job %s (%s total)", job_id, len(self._groups[job_id]))
        return queue

    def unsubscribe(self, job_id: str, queue: "asyncio.Queue[SubtitleProgressUpdate]") -> None:
        group = self._groups.get(job_id)
        if not group:
            return
        group.discard(queue)
        if not group:
            del self._groups[job_id]

    def subscriber_count(self, job_id: str) -> int:
        return len(self._groups.get(job_id, ()))

    async def publish(self, update: SubtitleProgressUpdate) -> int:
        """Deliver to every subscriber of the job; returns how many received it."""
        delivered = 0
        for queue in list(self._groups.get(update.job_id, ())):
            try:
                queue.put_nowait(update)
                delivered += 1
            except asyncio.QueueFull:
                logger.debug("Dropping progress update for slow subscriber of %s", update.job_id)
        return delivered


broker = ProgressBroker()
