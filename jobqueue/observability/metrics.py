"""
Prometheus metrics collection.
"""

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    start_http_server,
)

from jobqueue.constants import (
    METRIC_BACKEND_ERRORS,
    METRIC_JOB_DURATION,
    METRIC_JOBS_ENQUEUED,
    METRIC_JOBS_FINISHED,
    METRIC_QUEUE_DEPTH,
    METRIC_SLOT_RESTARTS,
)
from jobqueue.types import QueueStats

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the job queue.

    Collects metrics for:
    - Queue depth by state
    - Job submissions and attempt outcomes
    - Job execution duration
    - Backend errors seen by the worker
    - Worker slot restarts
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.queue_depth = Gauge(
            METRIC_QUEUE_DEPTH,
            "Number of jobs in the queue by state",
            ["queue", "state"],
            registry=self._registry,
        )

        self.jobs_enqueued = Counter(
            METRIC_JOBS_ENQUEUED,
            "Total number of jobs enqueued",
            ["queue"],
            registry=self._registry,
        )

        # Outcome is one of: succeeded, retried, dead_lettered, dropped
        self.jobs_finished = Counter(
            METRIC_JOBS_FINISHED,
            "Total number of job attempts by resolution",
            ["queue", "outcome"],
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Job execution duration in seconds",
            ["queue", "outcome"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )

        self.backend_errors = Counter(
            METRIC_BACKEND_ERRORS,
            "Total number of failed backend operations",
            ["queue", "operation"],
            registry=self._registry,
        )

        self.slot_restarts = Counter(
            METRIC_SLOT_RESTARTS,
            "Total number of worker slots recovered after an unexpected error",
            ["queue"],
            registry=self._registry,
        )

    def record_job_enqueued(self, queue: str, count: int = 1) -> None:
        """Record job submissions."""
        self.jobs_enqueued.labels(queue=queue).inc(count)

    def record_job_finished(
        self,
        queue: str,
        outcome: str,
        duration_seconds: float,
    ) -> None:
        """Record how an attempt was resolved."""
        self.jobs_finished.labels(queue=queue, outcome=outcome).inc()
        self.job_duration.labels(queue=queue, outcome=outcome).observe(duration_seconds)

    def record_backend_error(self, queue: str, operation: str) -> None:
        """Record a failed backend call."""
        self.backend_errors.labels(queue=queue, operation=operation).inc()

    def record_slot_restart(self, queue: str) -> None:
        """Record a worker slot recovering from an unexpected error."""
        self.slot_restarts.labels(queue=queue).inc()

    def update_queue_depth(self, queue: str, stats: QueueStats) -> None:
        """Update queue depth gauges from a stats snapshot."""
        self.queue_depth.labels(queue=queue, state="pending").set(stats.pending)
        self.queue_depth.labels(queue=queue, state="processing").set(stats.processing)
        self.queue_depth.labels(queue=queue, state="retrying").set(stats.retrying)
        self.queue_depth.labels(queue=queue, state="dead_letter").set(stats.dead_letter)

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)


def setup_metrics(port: int | None = None) -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Args:
        port: If given, also serve metrics over HTTP on this port.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    if port is not None:
        start_http_server(port, registry=_metrics._registry)
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
