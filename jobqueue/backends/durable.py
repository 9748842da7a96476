"""
Redis-backed durable backend.

Key layout (all prefixed with the queue name):
- {queue}:pending  - sorted set of job ids, score = priority * factor + created_at
- {queue}:retry    - sorted set of job ids, score = next_retry_at (ms)
- {queue}:job:{id} - JSON job record
- {queue}:dead     - list of dead-lettered JSON job records (newest first)
- {queue}:stats    - hash with processed / processing counters
"""

import logging
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from jobqueue.constants import (
    DEFAULT_QUEUE_NAME,
    KEY_DEAD,
    KEY_JOB,
    KEY_PENDING,
    KEY_RETRY,
    KEY_STATS,
    PRIORITY_SCORE_FACTOR,
    STAT_PROCESSED,
    STAT_PROCESSING,
)
from jobqueue.exceptions import BackendError, JobSerializationError
from jobqueue.types import Job, QueueStats, now_ms

logger = logging.getLogger(__name__)


def pending_score(job: Job) -> int:
    """Pending-set score: priority first, then creation time."""
    return job.priority * PRIORITY_SCORE_FACTOR + job.created_at


class DurableBackend:
    """
    Backend on a Redis-compatible sorted-set store.

    ``pop`` takes the lowest-scored pending ids with ZPOPMIN (atomic), then
    claims due retry ids one ZREM at a time; only the caller whose ZREM
    removed an id gets that job, so concurrent pollers never receive the
    same id from one pop. The two phases are not atomic as a whole, so a
    poller may briefly see nothing under contention and simply polls again.
    If a command fails after ids were taken, the ids are put back before
    ``BackendError`` is raised. Ids whose ZREM outcome is unknown (the claim
    pipeline itself failed) are left alone rather than risk a double claim.

    Jobs survive process restarts. Delivery is at-least-once: a crash between
    pop and complete leaves the job body in place but out of both sets.
    """

    def __init__(self, client: Any, queue_name: str = DEFAULT_QUEUE_NAME):
        """
        Initialize with an existing async Redis client.

        Args:
            client: A ``redis.asyncio`` client created with
                ``decode_responses=True``.
            queue_name: Key prefix for every key this backend touches.
        """
        self._redis = client
        self.queue_name = queue_name

    @classmethod
    def from_url(cls, url: str, queue_name: str = DEFAULT_QUEUE_NAME) -> "DurableBackend":
        """Create a backend with its own connection pool."""
        client = redis.from_url(url, encoding="utf-8", decode_responses=True)
        return cls(client, queue_name)

    # ==================== Keys ====================

    @property
    def pending_key(self) -> str:
        return f"{self.queue_name}:{KEY_PENDING}"

    @property
    def retry_key(self) -> str:
        return f"{self.queue_name}:{KEY_RETRY}"

    @property
    def dead_letter_key(self) -> str:
        return f"{self.queue_name}:{KEY_DEAD}"

    @property
    def stats_key(self) -> str:
        return f"{self.queue_name}:{KEY_STATS}"

    def job_key(self, job_id: str) -> str:
        return f"{self.queue_name}:{KEY_JOB}:{job_id}"

    # ==================== Operations ====================

    async def push(self, job: Job) -> None:
        job_json = job.to_json()

        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(self.job_key(job.id), job_json)
                if job.is_ready():
                    pipe.zadd(self.pending_key, {job.id: pending_score(job)})
                else:
                    pipe.zadd(self.retry_key, {job.id: job.next_retry_at})
                await pipe.execute()
        except RedisError as e:
            raise BackendError(
                f"Failed to push job to queue '{self.queue_name}'",
                details={"job_id": job.id, "error": str(e)},
            ) from e

        logger.debug("Job pushed", extra={"job_id": job.id, "queue": self.queue_name})

    async def pop(self, count: int) -> list[Job]:
        if count <= 0:
            return []

        popped: list[tuple[str, float]] = []
        claimed: list[str] = []
        try:
            popped = await self._redis.zpopmin(self.pending_key, count)

            remaining = count - len(popped)
            if remaining > 0:
                claimed = await self._claim_due_retries(remaining)

            job_ids = [member for member, _score in popped] + claimed
            if not job_ids:
                return []

            records = await self._redis.mget([self.job_key(job_id) for job_id in job_ids])
        except RedisError as e:
            await self._restore_claimed(popped, claimed)
            raise BackendError(
                f"Failed to pop jobs from queue '{self.queue_name}'",
                details={"error": str(e)},
            ) from e

        jobs = []
        for job_id, record in zip(job_ids, records):
            if record is None:
                logger.warning("Job not found in storage", extra={"job_id": job_id})
                continue
            try:
                jobs.append(Job.from_json(record))
            except JobSerializationError:
                logger.exception("Failed to deserialize job", extra={"job_id": job_id})

        if jobs:
            try:
                await self._redis.hincrby(self.stats_key, STAT_PROCESSING, len(jobs))
            except RedisError:
                # The jobs are already claimed; only the gauge is lost.
                logger.warning("Failed to update processing counter", exc_info=True)

        return jobs

    async def _claim_due_retries(self, limit: int) -> list[str]:
        """Remove and return up to ``limit`` retry ids whose time has come."""
        candidates = await self._redis.zrangebyscore(
            self.retry_key, "-inf", now_ms(), start=0, num=limit
        )
        if not candidates:
            return []

        async with self._redis.pipeline(transaction=False) as pipe:
            for job_id in candidates:
                pipe.zrem(self.retry_key, job_id)
            removed = await pipe.execute()

        return [job_id for job_id, n in zip(candidates, removed) if n]

    async def _restore_claimed(self, popped: list[tuple[str, float]], claimed: list[str]) -> None:
        """
        Put ids taken by a failed pop back where they came from.

        Pending ids keep their original score; claimed retries were already
        due, so they go back as due now.
        """
        if not popped and not claimed:
            return

        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                if popped:
                    pipe.zadd(self.pending_key, dict(popped))
                if claimed:
                    now = now_ms()
                    pipe.zadd(self.retry_key, {job_id: now for job_id in claimed})
                await pipe.execute()
        except RedisError:
            logger.exception(
                "Failed to restore claimed jobs after a failed pop",
                extra={
                    "queue": self.queue_name,
                    "job_ids": [member for member, _score in popped] + claimed,
                },
            )
            return

        logger.warning(
            "Restored claimed jobs after a failed pop",
            extra={"queue": self.queue_name, "count": len(popped) + len(claimed)},
        )

    async def complete(self, job_id: str) -> None:
        try:
            deleted = await self._redis.delete(self.job_key(job_id))
            if not deleted:
                return

            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hincrby(self.stats_key, STAT_PROCESSED, 1)
                pipe.hincrby(self.stats_key, STAT_PROCESSING, -1)
                await pipe.execute()
        except RedisError as e:
            raise BackendError(
                f"Failed to complete job in queue '{self.queue_name}'",
                details={"job_id": job_id, "error": str(e)},
            ) from e

        logger.debug("Job completed", extra={"job_id": job_id})

    async def fail(self, job: Job, error: str) -> None:
        job.last_error = error
        job_json = job.to_json()
        score = job.next_retry_at if job.next_retry_at is not None else now_ms()

        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(self.job_key(job.id), job_json)
                pipe.zadd(self.retry_key, {job.id: score})
                pipe.hincrby(self.stats_key, STAT_PROCESSING, -1)
                await pipe.execute()
        except RedisError as e:
            raise BackendError(
                f"Failed to schedule retry in queue '{self.queue_name}'",
                details={"job_id": job.id, "error": str(e)},
            ) from e

        logger.debug(
            "Job scheduled for retry",
            extra={"job_id": job.id, "attempts": job.attempts},
        )

    async def dead_letter(self, job: Job) -> None:
        job_json = job.to_json()

        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.lpush(self.dead_letter_key, job_json)
                pipe.delete(self.job_key(job.id))
                pipe.zrem(self.pending_key, job.id)
                pipe.zrem(self.retry_key, job.id)
                pipe.hincrby(self.stats_key, STAT_PROCESSING, -1)
                await pipe.execute()
        except RedisError as e:
            raise BackendError(
                f"Failed to dead-letter job in queue '{self.queue_name}'",
                details={"job_id": job.id, "error": str(e)},
            ) from e

        logger.warning("Job moved to dead letter queue", extra={"job_id": job.id})

    async def discard(self, job_id: str) -> None:
        try:
            deleted = await self._redis.delete(self.job_key(job_id))
            if not deleted:
                return
            await self._redis.hincrby(self.stats_key, STAT_PROCESSING, -1)
        except RedisError as e:
            raise BackendError(
                f"Failed to discard job in queue '{self.queue_name}'",
                details={"job_id": job_id, "error": str(e)},
            ) from e

        logger.debug("Job discarded", extra={"job_id": job_id})

    async def stats(self) -> QueueStats:
        try:
            async with self._redis.pipeline(transaction=False) as pipe:
                pipe.zcard(self.pending_key)
                pipe.zcount(self.retry_key, "-inf", now_ms())
                pipe.zcard(self.retry_key)
                pipe.llen(self.dead_letter_key)
                pipe.hmget(self.stats_key, [STAT_PROCESSED, STAT_PROCESSING])
                pending, due, retrying, dead, counters = await pipe.execute()
        except RedisError as e:
            raise BackendError(
                f"Failed to read stats for queue '{self.queue_name}'",
                details={"error": str(e)},
            ) from e

        processed, processing = (int(value or 0) for value in counters)

        return QueueStats(
            pending=pending + due,
            # Counter can drift below zero after crashes or repeated reports.
            processing=max(0, processing),
            retrying=retrying - due,
            dead_letter=dead,
            processed=processed,
        )

    async def dead_letters(self, limit: int = 100) -> list[Job]:
        """Return up to ``limit`` dead-lettered jobs, newest first."""
        try:
            records = await self._redis.lrange(self.dead_letter_key, 0, limit - 1)
        except RedisError as e:
            raise BackendError(
                f"Failed to read dead letters for queue '{self.queue_name}'",
                details={"error": str(e)},
            ) from e
        return [Job.from_json(record) for record in records]

    async def close(self) -> None:
        """Close the underlying connection pool."""
        await self._redis.aclose()
        logger.info("Disconnected from Redis", extra={"queue": self.queue_name})
