"""
Process-local backend for tests, development and single-process deployments.
"""

import asyncio
import heapq
import itertools
import logging

from jobqueue.types import Job, QueueStats, now_ms

logger = logging.getLogger(__name__)


class MemoryBackend:
    """
    In-memory backend guarded by an asyncio lock.

    Pending jobs live in a heap ordered by ``(priority, created_at, seq)``;
    retrying and delayed jobs live in a second heap ordered by
    ``(next_retry_at, seq)``. ``pop`` drains eligible pending jobs first and
    then due retries, so a large far-future retry backlog costs nothing to
    skip. ``seq`` is an insertion counter used as the final tie-break.

    Nothing survives a process restart.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._seq = itertools.count()
        self._pending: list[tuple[int, int, int, Job]] = []
        self._scheduled: list[tuple[int, int, Job]] = []
        self._in_flight: set[str] = set()
        self._dead: list[Job] = []
        self._processed = 0

    def _insert(self, job: Job, now: int) -> None:
        seq = next(self._seq)
        if job.is_ready(now):
            heapq.heappush(self._pending, (job.priority, job.created_at, seq, job))
        else:
            heapq.heappush(self._scheduled, (job.next_retry_at, seq, job))

    async def push(self, job: Job) -> None:
        async with self._lock:
            self._insert(job, now_ms())

        logger.debug("Job pushed", extra={"job_id": job.id, "priority": job.priority})

    async def pop(self, count: int) -> list[Job]:
        jobs: list[Job] = []
        if count <= 0:
            return jobs

        async with self._lock:
            now = now_ms()

            while self._pending and len(jobs) < count:
                jobs.append(heapq.heappop(self._pending)[-1])

            while (
                self._scheduled
                and len(jobs) < count
                and self._scheduled[0][0] <= now
            ):
                jobs.append(heapq.heappop(self._scheduled)[-1])

            self._in_flight.update(job.id for job in jobs)

        return jobs

    async def complete(self, job_id: str) -> None:
        async with self._lock:
            if job_id not in self._in_flight:
                return
            self._in_flight.discard(job_id)
            self._processed += 1

        logger.debug("Job completed", extra={"job_id": job_id})

    async def fail(self, job: Job, error: str) -> None:
        job.last_error = error

        async with self._lock:
            self._in_flight.discard(job.id)
            self._insert(job, now_ms())

        logger.debug(
            "Job scheduled for retry",
            extra={"job_id": job.id, "attempts": job.attempts},
        )

    async def dead_letter(self, job: Job) -> None:
        async with self._lock:
            self._in_flight.discard(job.id)
            self._dead.append(job)

        logger.warning("Job moved to dead letter queue", extra={"job_id": job.id})

    async def discard(self, job_id: str) -> None:
        async with self._lock:
            if job_id not in self._in_flight:
                return
            self._in_flight.discard(job_id)

        logger.debug("Job discarded", extra={"job_id": job_id})

    async def stats(self) -> QueueStats:
        async with self._lock:
            now = now_ms()
            due = sum(1 for entry in self._scheduled if entry[0] <= now)

            return QueueStats(
                pending=len(self._pending) + due,
                processing=len(self._in_flight),
                retrying=len(self._scheduled) - due,
                dead_letter=len(self._dead),
                processed=self._processed,
            )

    async def dead_letters(self, limit: int = 100) -> list[Job]:
        """Return up to ``limit`` dead-lettered jobs, newest first."""
        async with self._lock:
            return self._dead[::-1][:limit]

    async def close(self) -> None:
        """Nothing to release."""
