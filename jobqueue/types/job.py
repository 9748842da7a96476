"""
Job-related type definitions.
"""

import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable
from uuid import uuid4

from pydantic import BaseModel, Field, ValidationError
from pydantic_core import PydanticSerializationError

from jobqueue.constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_PRIORITY,
    MAX_PRIORITY,
    MIN_PRIORITY,
    JobOutcome,
)
from jobqueue.exceptions import JobSerializationError


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


class Job(BaseModel):
    """
    A unit of deferred work plus its scheduling metadata.

    ``id`` is the idempotency key for complete/dead_letter and must not be
    changed after creation. Lower ``priority`` values are served first.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    payload: Any = None
    attempts: int = Field(default=0, ge=0)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    created_at: int = Field(default_factory=now_ms)
    next_retry_at: int | None = None
    last_error: str | None = None
    priority: int = Field(default=DEFAULT_PRIORITY, ge=MIN_PRIORITY, le=MAX_PRIORITY)
    metadata: dict[str, str] = Field(default_factory=dict)

    def should_retry(self) -> bool:
        """Check if another attempt is allowed after a failure."""
        return self.attempts < self.max_retries

    def prepare_retry(self, delay_seconds: float) -> None:
        """
        Record a failed attempt and schedule the next one.

        Args:
            delay_seconds: Backoff before the job becomes eligible again.
        """
        self.attempts += 1
        next_retry_at = now_ms() + int(delay_seconds * 1000)
        # Backoff never shrinks.
        if self.next_retry_at is not None:
            next_retry_at = max(next_retry_at, self.next_retry_at)
        self.next_retry_at = next_retry_at

    def is_ready(self, now: int | None = None) -> bool:
        """Check if the job is eligible for dequeue at ``now`` (epoch ms)."""
        if self.next_retry_at is None:
            return True
        return self.next_retry_at <= (now if now is not None else now_ms())

    def to_json(self) -> str:
        """
        Serialize the job to its stored JSON record.

        Raises:
            JobSerializationError: If the payload is not JSON-serializable.
        """
        try:
            return self.model_dump_json()
        except PydanticSerializationError as e:
            raise JobSerializationError(
                f"Failed to serialize job {self.id}: {e}",
                details={"job_id": self.id},
            ) from e

    @classmethod
    def from_json(cls, raw: str | bytes) -> "Job":
        """
        Deserialize a job from its stored JSON record.

        Raises:
            JobSerializationError: If the record is malformed.
        """
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            raise JobSerializationError(f"Failed to deserialize job: {e}") from e


class ExecutionResult(BaseModel):
    """
    Result of a single execution attempt.
    Returned by executors after processing.
    """

    outcome: JobOutcome
    error: str | None = None
    output: dict[str, Any] | None = None

    @classmethod
    def success(cls, output: dict[str, Any] | None = None) -> "ExecutionResult":
        return cls(outcome=JobOutcome.SUCCESS, output=output)

    @classmethod
    def retryable(cls, error: str) -> "ExecutionResult":
        return cls(outcome=JobOutcome.RETRY, error=error)

    @classmethod
    def terminal(cls, error: str) -> "ExecutionResult":
        return cls(outcome=JobOutcome.TERMINAL, error=error)

    @property
    def is_success(self) -> bool:
        return self.outcome == JobOutcome.SUCCESS


@runtime_checkable
class Executor(Protocol):
    """
    Performs the side effect of a job.

    Implementations classify failures: transient problems (timeouts,
    unavailable services) are ``retryable``, bad input is ``terminal``.
    Jobs are delivered at least once, so side effects must be idempotent.
    """

    async def run(self, job: Job) -> ExecutionResult: ...


# Plain coroutine functions are accepted wherever an Executor is.
ExecutorFunc = Callable[[Job], Awaitable[ExecutionResult]]
