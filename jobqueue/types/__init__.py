"""
Type definitions for the job queue.
"""

from jobqueue.types.job import (
    ExecutionResult,
    Executor,
    ExecutorFunc,
    Job,
    now_ms,
)
from jobqueue.types.stats import QueueStats

__all__ = [
    # Job types
    "Job",
    "ExecutionResult",
    "Executor",
    "ExecutorFunc",
    "now_ms",
    # Stats
    "QueueStats",
]
