"""
Queue facade.

Callers enqueue payloads and get an id back immediately; execution happens
later in a Worker bound to the same backend.

Example:
    queue = Queue.in_memory(QueueConfig(concurrency=2))
    job_id = await queue.enqueue({"job_type": "echo", "data": {"to": "user@example.com"}})

    worker = queue.worker(HandlerExecutor())
    task = asyncio.create_task(worker.run())
    ...
    await worker.stop()
    await task
"""

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, Field

from jobqueue.backends import Backend, DurableBackend, MemoryBackend, create_backend
from jobqueue.config import Settings, get_settings
from jobqueue.constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_PRIORITY,
    DEFAULT_QUEUE_NAME,
    MAX_PRIORITY,
    MIN_PRIORITY,
)
from jobqueue.exceptions import BatchEnqueueError, QueueError
from jobqueue.observability.metrics import get_metrics
from jobqueue.retry import RetryPolicy
from jobqueue.types import Executor, ExecutorFunc, Job, QueueStats, now_ms
from jobqueue.worker import Worker

logger = logging.getLogger(__name__)


class QueueConfig(BaseModel):
    """
    Queue and worker configuration.

    Durations are in seconds. ``job_timeout=None`` lets executors run
    without a deadline.
    """

    queue_name: str = DEFAULT_QUEUE_NAME
    concurrency: int = Field(default=4, ge=1)
    batch_size: int = Field(default=10, ge=1)
    poll_interval: float = Field(default=1.0, gt=0)
    base_retry_delay: float = Field(default=5.0, ge=0)
    max_retry_delay: float = Field(default=300.0, ge=0)
    dead_letter_enabled: bool = True
    job_timeout: float | None = Field(default=60.0, gt=0)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    default_priority: int = Field(default=DEFAULT_PRIORITY, ge=MIN_PRIORITY, le=MAX_PRIORITY)
    backend_retry_attempts: int = Field(default=5, ge=1)
    backend_retry_delay: float = Field(default=0.5, ge=0)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "QueueConfig":
        """Build a config from environment settings."""
        settings = settings or get_settings()
        return cls(
            queue_name=settings.queue_name,
            concurrency=settings.worker_concurrency,
            batch_size=settings.worker_batch_size,
            poll_interval=settings.worker_poll_interval_seconds,
            base_retry_delay=settings.retry_base_delay_seconds,
            max_retry_delay=settings.retry_max_delay_seconds,
            dead_letter_enabled=settings.dead_letter_enabled,
            job_timeout=settings.job_timeout_seconds,
            max_retries=settings.default_max_retries,
            default_priority=settings.default_priority,
            backend_retry_attempts=settings.worker_backend_retry_attempts,
            backend_retry_delay=settings.worker_backend_retry_delay_seconds,
        )

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            base_delay_seconds=self.base_retry_delay,
            max_delay_seconds=self.max_retry_delay,
        )

    @property
    def channel_capacity(self) -> int:
        """Capacity of the poller-to-slots channel."""
        return self.batch_size * 2


class Queue:
    """
    Thin facade over a Backend.

    Owns the backend and the configuration that workers created from it
    inherit.
    """

    def __init__(self, backend: Backend, config: QueueConfig | None = None):
        """
        Initialize the queue.

        Args:
            backend: Storage backend shared by producers and workers.
            config: Queue configuration. Defaults to QueueConfig().
        """
        self.backend = backend
        self.config = config or QueueConfig()
        self._metrics = get_metrics()

    @classmethod
    def in_memory(cls, config: QueueConfig | None = None) -> "Queue":
        """Create a queue with a process-local backend."""
        return cls(MemoryBackend(), config)

    @classmethod
    def redis(cls, client_or_url: Any, config: QueueConfig | None = None) -> "Queue":
        """
        Create a queue with a Redis backend.

        Args:
            client_or_url: A Redis URL, or an async Redis client created with
                ``decode_responses=True``.
            config: Queue configuration; its queue_name is the key prefix.
        """
        config = config or QueueConfig()
        if isinstance(client_or_url, str):
            backend = DurableBackend.from_url(client_or_url, config.queue_name)
        else:
            backend = DurableBackend(client_or_url, config.queue_name)
        return cls(backend, config)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "Queue":
        """Create the queue described by environment settings."""
        settings = settings or get_settings()
        return cls(create_backend(settings), QueueConfig.from_settings(settings))

    async def enqueue(
        self,
        payload: Any,
        *,
        priority: int | None = None,
        max_retries: int | None = None,
        metadata: dict[str, str] | None = None,
        delay: float | None = None,
    ) -> str:
        """
        Enqueue a payload for background execution.

        Returns as soon as the backend has stored the job.

        Args:
            payload: Data the executor needs. Must be JSON-serializable for
                the Redis backend.
            priority: 0 (first) to 255 (last). Defaults to the queue's.
            max_retries: Retry ceiling. Defaults to the queue's.
            metadata: Caller tags, stored but not interpreted.
            delay: Seconds before the job becomes eligible.

        Returns:
            The new job id.

        Raises:
            BackendError: If the backend cannot store the job.
            JobSerializationError: If the payload cannot be serialized.
        """
        job = Job(
            payload=payload,
            priority=self.config.default_priority if priority is None else priority,
            max_retries=self.config.max_retries if max_retries is None else max_retries,
            metadata=metadata or {},
        )
        if delay:
            job.next_retry_at = now_ms() + int(delay * 1000)

        return await self.enqueue_job(job)

    async def enqueue_job(self, job: Job) -> str:
        """
        Enqueue a caller-built job.

        Args:
            job: The job. Its id must be unique within this queue.

        Returns:
            The job id.
        """
        await self.backend.push(job)

        self._metrics.record_job_enqueued(self.config.queue_name)
        logger.info(
            "Enqueued job",
            extra={
                "job_id": job.id,
                "queue": self.config.queue_name,
                "priority": job.priority,
            },
        )
        return job.id

    async def enqueue_batch(self, payloads: Iterable[Any]) -> list[str]:
        """
        Enqueue payloads one after another.

        Fail-fast: stops at the first payload that cannot be enqueued.

        Returns:
            Job ids in payload order.

        Raises:
            BatchEnqueueError: Carries the ids enqueued before the failure and
                the index of the failing payload.
        """
        job_ids: list[str] = []
        for index, payload in enumerate(payloads):
            try:
                job_ids.append(await self.enqueue(payload))
            except QueueError as e:
                raise BatchEnqueueError(
                    f"Batch enqueue stopped at payload {index}: {e.message}",
                    job_ids=job_ids,
                    failed_index=index,
                    details=e.details,
                ) from e
        return job_ids

    async def stats(self) -> QueueStats:
        """Get a best-effort statistics snapshot."""
        stats = await self.backend.stats()
        self._metrics.update_queue_depth(self.config.queue_name, stats)
        return stats

    def worker(
        self,
        executor: Executor | ExecutorFunc,
        shutdown: asyncio.Event | None = None,
    ) -> Worker:
        """
        Create a worker that processes this queue.

        Args:
            executor: Performs each job's side effect.
            shutdown: Optional shared event; setting it drains the worker.

        Returns:
            A Worker in the idle state. Call ``run()`` to start it.
        """
        return Worker(self.backend, executor, self.config, shutdown=shutdown)

    async def close(self) -> None:
        """Release backend connections."""
        await self.backend.close()
