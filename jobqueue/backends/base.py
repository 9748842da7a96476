"""
Backend interface.

Every implementation must give identical observable semantics:

- push: insert into the pending set (or the scheduled set when the job
  carries a future ``next_retry_at``).
- pop: atomically remove and return up to ``count`` eligible jobs, preferring
  lower priority values, then earlier timestamps. Never blocks.
- complete: delete job state and bump ``processed``; no-op for unknown ids.
- fail: store the job (already passed through ``prepare_retry``) in the
  retry set keyed by ``next_retry_at``.
- dead_letter: move the job to the terminal store; it is never popped again.
- discard: forget a popped job without counting it as processed; no-op for
  unknown ids. Used when a job is dropped with dead-lettering disabled.
- stats: best-effort snapshot.

All operations must be safe under concurrent callers.
"""

from typing import Protocol, runtime_checkable

from jobqueue.types import Job, QueueStats


@runtime_checkable
class Backend(Protocol):
    """Pluggable persistence and ordering layer for jobs."""

    async def push(self, job: Job) -> None: ...

    async def pop(self, count: int) -> list[Job]: ...

    async def complete(self, job_id: str) -> None: ...

    async def fail(self, job: Job, error: str) -> None: ...

    async def dead_letter(self, job: Job) -> None: ...

    async def discard(self, job_id: str) -> None: ...

    async def stats(self) -> QueueStats: ...

    async def close(self) -> None: ...
