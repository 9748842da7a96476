"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class WorkerState(StrEnum):
    """
    Worker lifecycle states.

    State transitions:
    - IDLE -> RUNNING (run() called)
    - RUNNING -> DRAINING (shutdown signalled)
    - DRAINING -> STOPPED (in-flight jobs finished, slots exited)
    """

    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


class JobOutcome(StrEnum):
    """Outcome reported by an executor for a single attempt."""

    SUCCESS = "success"
    RETRY = "retry"
    TERMINAL = "terminal"


# Default values
DEFAULT_QUEUE_NAME = "jobqueue"
DEFAULT_MAX_RETRIES = 3
DEFAULT_PRIORITY = 5
MIN_PRIORITY = 0
MAX_PRIORITY = 255

# Pending-set score multiplier: priority * factor + created_at (ms).
# Larger than any epoch-ms timestamp so priority always dominates, and
# 255 * factor + now stays below 2**53 so scores are exact float64 values.
PRIORITY_SCORE_FACTOR = 10**13

# Redis key suffixes (appended to the queue name)
KEY_PENDING = "pending"
KEY_RETRY = "retry"
KEY_DEAD = "dead"
KEY_JOB = "job"
KEY_STATS = "stats"

# Stats hash fields
STAT_PROCESSED = "processed"
STAT_PROCESSING = "processing"

# Metrics names
METRIC_QUEUE_DEPTH = "job_queue_depth"
METRIC_JOBS_ENQUEUED = "jobs_enqueued_total"
METRIC_JOBS_FINISHED = "jobs_finished_total"
METRIC_JOB_DURATION = "job_duration_seconds"
METRIC_BACKEND_ERRORS = "backend_errors_total"
METRIC_SLOT_RESTARTS = "worker_slot_restarts_total"

# Trace span names
SPAN_EXECUTE_JOB = "execute_job"
