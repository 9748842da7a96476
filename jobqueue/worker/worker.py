"""
Supervised worker pool.

One poller pops batches from the backend and feeds a bounded channel; a fixed
pool of slots pulls from the channel, runs the executor and resolves each
attempt into complete, retry or dead-letter.
"""

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from jobqueue.backends import Backend
from jobqueue.constants import SPAN_EXECUTE_JOB, JobOutcome, WorkerState
from jobqueue.observability.logging import bind_context, job_context
from jobqueue.observability.metrics import get_metrics
from jobqueue.observability.tracing import get_tracer
from jobqueue.types import ExecutionResult, Executor, ExecutorFunc, Job

if TYPE_CHECKING:
    from jobqueue.queue import QueueConfig

logger = logging.getLogger(__name__)

# Attempt resolutions, used for counters and metric labels
SUCCEEDED = "succeeded"
RETRIED = "retried"
DEAD_LETTERED = "dead_lettered"
DROPPED = "dropped"


class Worker:
    """
    Job worker that polls the backend and executes jobs concurrently.

    Features:
    - Bounded channel (2 x batch_size) between poller and slots, so a busy
      pool blocks the poller instead of buffering unbounded work
    - Exponential backoff retries and dead-lettering
    - Per-job timeout treated as a retryable failure
    - Backend errors are logged and retried, never fatal
    - Graceful shutdown: stop polling, finish dispatched jobs, then exit
    """

    def __init__(
        self,
        backend: Backend,
        executor: Executor | ExecutorFunc,
        config: "QueueConfig",
        shutdown: asyncio.Event | None = None,
    ):
        """
        Initialize the worker.

        Args:
            backend: Backend to pop from and report to.
            executor: Executor instance or ``async def fn(job)`` callable.
            config: Queue configuration the worker inherits.
            shutdown: Optional event shared with other components; setting it
                drains this worker. A private event is created otherwise.
        """
        self.backend = backend
        self.config = config

        if isinstance(executor, Executor):
            self._run_executor = executor.run
        else:
            self._run_executor = executor

        self._retry_policy = config.retry_policy
        self._shutdown = shutdown or asyncio.Event()
        self._state = WorkerState.IDLE
        self._counters = {
            "polled": 0,
            SUCCEEDED: 0,
            RETRIED: 0,
            DEAD_LETTERED: 0,
            DROPPED: 0,
            "backend_errors": 0,
            "slot_restarts": 0,
        }
        self._metrics = get_metrics()
        self._tracer = get_tracer()

        if self._retry_policy.is_busy_loop:
            logger.warning(
                "Retry delays are zero; failing jobs will be retried immediately",
                extra={"queue": config.queue_name},
            )

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def counters(self) -> dict[str, int]:
        """Snapshot of observability counters."""
        return dict(self._counters)

    async def run(self) -> None:
        """
        Run until shutdown is signalled, then drain and return.

        Raises:
            RuntimeError: If the worker has already been started.
        """
        if self._state != WorkerState.IDLE:
            raise RuntimeError(f"Worker cannot be started from state '{self._state}'")

        self._state = WorkerState.RUNNING
        logger.info(
            "Worker started",
            extra={
                "queue": self.config.queue_name,
                "concurrency": self.config.concurrency,
                "batch_size": self.config.batch_size,
            },
        )

        channel: asyncio.Queue[Job | None] = asyncio.Queue(
            maxsize=self.config.channel_capacity
        )
        slots = [
            asyncio.create_task(self._slot_loop(slot, channel))
            for slot in range(self.config.concurrency)
        ]

        try:
            await self._poll_loop(channel)
        finally:
            self._state = WorkerState.DRAINING
            logger.info(
                "Worker draining",
                extra={"queue": self.config.queue_name, "queued": channel.qsize()},
            )

            # One sentinel per slot, behind any jobs still in the channel.
            for _ in slots:
                await channel.put(None)
            await asyncio.gather(*slots, return_exceptions=True)

            self._state = WorkerState.STOPPED
            logger.info(
                "Worker stopped",
                extra={"queue": self.config.queue_name, **self._counters},
            )

    async def stop(self) -> None:
        """Signal shutdown. ``run()`` returns once in-flight jobs finish."""
        logger.info("Worker stopping", extra={"queue": self.config.queue_name})
        self._shutdown.set()

    async def _poll_loop(self, channel: asyncio.Queue) -> None:
        while not self._shutdown.is_set():
            try:
                jobs = await self.backend.pop(self.config.batch_size)
            except Exception:
                logger.exception(
                    "Failed to fetch jobs from queue",
                    extra={"queue": self.config.queue_name},
                )
                self._record_backend_error("pop")
                await self._wait_for_shutdown(self.config.poll_interval)
                continue

            if not jobs:
                await self._wait_for_shutdown(self.config.poll_interval)
                continue

            self._counters["polled"] += len(jobs)
            logger.debug(
                f"Fetched {len(jobs)} jobs",
                extra={"queue": self.config.queue_name},
            )

            # Popped jobs are already out of the backend, so the whole batch
            # is dispatched even if shutdown arrives meanwhile.
            for job in jobs:
                await channel.put(job)

    async def _wait_for_shutdown(self, timeout: float) -> None:
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout)
        except TimeoutError:
            pass

    async def _slot_loop(self, slot: int, channel: asyncio.Queue) -> None:
        bind_context(worker_slot=slot, queue=self.config.queue_name)

        while True:
            job = await channel.get()
            if job is None:
                break

            try:
                with job_context(job):
                    await self._process_job(job)
            except Exception:
                self._counters["slot_restarts"] += 1
                self._metrics.record_slot_restart(self.config.queue_name)
                logger.exception(
                    "Worker slot recovered from unexpected error",
                    extra={"slot": slot, "job_id": job.id},
                )

    async def _process_job(self, job: Job) -> None:
        """
        Execute a single job and resolve the attempt.

        - success -> complete
        - retryable failure with retries left -> backoff, fail (retry set)
        - anything else -> dead letter, or drop if dead-lettering is disabled
        """
        start_time = time.monotonic()
        result = await self._execute(job)
        duration = time.monotonic() - start_time
        error = result.error or "Unknown error"

        if result.is_success:
            await self._report("complete", self.backend.complete, job.id)
            resolution = SUCCEEDED

            logger.info(
                "Job completed successfully",
                extra={"job_id": job.id, "duration": f"{duration:.2f}s"},
            )

        elif result.outcome == JobOutcome.RETRY and job.should_retry():
            delay = self._retry_policy.get_delay(job.attempts)
            job.prepare_retry(delay)
            await self._report("fail", self.backend.fail, job, error)
            resolution = RETRIED

            logger.warning(
                "Job failed, scheduled for retry",
                extra={
                    "job_id": job.id,
                    "error": error,
                    "attempt": job.attempts,
                    "max_retries": job.max_retries,
                    "delay": delay,
                },
            )

        else:
            # Record the final attempt so exhausted jobs show max_retries + 1.
            job.attempts += 1
            job.last_error = error

            if self.config.dead_letter_enabled:
                await self._report("dead_letter", self.backend.dead_letter, job)
                resolution = DEAD_LETTERED

                logger.error(
                    "Job moved to dead letter queue",
                    extra={"job_id": job.id, "error": error, "attempts": job.attempts},
                )
            else:
                await self._report("discard", self.backend.discard, job.id)
                resolution = DROPPED

                logger.error(
                    "Job dropped, dead-lettering is disabled",
                    extra={"job_id": job.id, "error": error, "attempts": job.attempts},
                )

        self._counters[resolution] += 1
        self._metrics.record_job_finished(self.config.queue_name, resolution, duration)

    async def _execute(self, job: Job) -> ExecutionResult:
        """Run the executor, converting exceptions and timeouts into results."""
        timeout = self.config.job_timeout

        with self._tracer.start_as_current_span(SPAN_EXECUTE_JOB) as span:
            span.set_attribute("job_id", job.id)
            span.set_attribute("queue", self.config.queue_name)
            span.set_attribute("attempt", job.attempts)

            try:
                if timeout:
                    result = await asyncio.wait_for(self._run_executor(job), timeout)
                else:
                    result = await self._run_executor(job)
            except TimeoutError:
                logger.warning(
                    "Job timed out",
                    extra={"job_id": job.id, "timeout": timeout},
                )
                return ExecutionResult.retryable(f"Job timed out after {timeout}s")
            except Exception as e:
                span.record_exception(e)
                logger.exception(
                    "Executor raised exception",
                    extra={"job_id": job.id, "error": str(e)},
                )
                return ExecutionResult.retryable(f"Executor exception: {e}")

            if not isinstance(result, ExecutionResult):
                return ExecutionResult.terminal(
                    f"Executor returned {type(result).__name__}, expected ExecutionResult"
                )

            span.set_attribute("outcome", result.outcome.value)
            return result

    async def _report(self, operation: str, func, *args) -> bool:
        """
        Call a backend reporting operation, retrying with a fixed backoff.

        Returns:
            True if the operation succeeded within the retry budget.
        """
        attempts = self.config.backend_retry_attempts

        for attempt in range(1, attempts + 1):
            try:
                await func(*args)
                return True
            except Exception:
                self._record_backend_error(operation)
                if attempt == attempts:
                    logger.exception(
                        f"Giving up on backend {operation}",
                        extra={"queue": self.config.queue_name, "attempts": attempts},
                    )
                    return False
                logger.warning(
                    f"Backend {operation} failed, retrying",
                    exc_info=True,
                    extra={"queue": self.config.queue_name, "attempt": attempt},
                )
                await asyncio.sleep(self.config.backend_retry_delay)

        return False

    def _record_backend_error(self, operation: str) -> None:
        self._counters["backend_errors"] += 1
        self._metrics.record_backend_error(self.config.queue_name, operation)
