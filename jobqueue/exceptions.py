"""
Exception hierarchy for queue operations.

Enqueue-time errors propagate to the caller. Execution-time errors are never
raised to the enqueuer; the worker resolves them into retry or dead-letter.
"""

from typing import Any


class QueueError(Exception):
    """
    Base exception for queue operations.

    Attributes:
        message: Human-readable error description.
        details: Additional error context.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class BackendError(QueueError):
    """Raised when the storage backend is unreachable or a command fails."""


class JobSerializationError(QueueError):
    """Raised when a job cannot be converted to or from its stored form."""


class BatchEnqueueError(QueueError):
    """
    Raised by Queue.enqueue_batch on the first payload that fails.

    Batch enqueue is fail-fast: payloads before ``failed_index`` were
    persisted (their ids are in ``job_ids``); the failing payload and
    everything after it were not.
    """

    def __init__(
        self,
        message: str,
        job_ids: list[str],
        failed_index: int,
        details: dict[str, Any] | None = None,
    ):
        self.job_ids = job_ids
        self.failed_index = failed_index
        super().__init__(message, details)
