"""
Unit tests for logging, metrics and tracing setup.
"""

import logging
import os

import pytest
import structlog
from prometheus_client import CollectorRegistry

from jobqueue.config import Settings
from jobqueue.observability import (
    MetricsCollector,
    bind_context,
    clear_context,
    get_metrics,
    get_tracer,
    job_context,
    setup_logging,
    shutdown_tracing,
)
from jobqueue.types import Job, QueueStats


class TestLogging:
    """Tests for structured logging."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        """Put the root logger back after setup_logging replaces its handlers."""
        root_logger = logging.getLogger()
        handlers, level = root_logger.handlers[:], root_logger.level
        yield
        root_logger.handlers = handlers
        root_logger.setLevel(level)
        structlog.reset_defaults()

    def test_setup_logging_json(self, capsys):
        """Test stdlib log records come out as JSON with extra fields."""
        setup_logging(Settings(log_level="INFO", log_format="json"))

        logging.getLogger("jobqueue.test").info("Job pushed", extra={"job_id": "abc"})

        out = capsys.readouterr().out
        assert '"event": "Job pushed"' in out
        assert '"job_id": "abc"' in out

    def test_bound_context(self, capsys):
        """Test bound context is merged into every record until cleared."""
        setup_logging(Settings(log_level="INFO", log_format="json"))

        bind_context(worker_slot=3)
        try:
            logging.getLogger("jobqueue.test").info("Worker started")
        finally:
            clear_context()

        assert '"worker_slot": 3' in capsys.readouterr().out
        assert structlog.contextvars.get_contextvars() == {}

    def test_job_context(self, capsys):
        """Test records logged while processing a job carry its id and attempt."""
        setup_logging(Settings(log_level="INFO", log_format="json"))
        job = Job(id="job-1", attempts=2)

        with job_context(job):
            logging.getLogger("jobqueue.test").warning("Job failed, scheduled for retry")
        logging.getLogger("jobqueue.test").info("Worker stopped")

        first, second = capsys.readouterr().out.strip().splitlines()
        assert '"job_id": "job-1"' in first
        assert '"attempt": 2' in first
        assert "job_id" not in second

    def test_worker_identity(self, capsys):
        """Test records carry the process id."""
        setup_logging(Settings(log_level="INFO", log_format="json"))

        logging.getLogger("jobqueue.test").info("Worker started")

        assert f'"pid": {os.getpid()}' in capsys.readouterr().out


class TestMetrics:
    """Tests for MetricsCollector."""

    def test_records_queue_activity(self):
        """Test counters and gauges appear in the exposition output."""
        collector = MetricsCollector(registry=CollectorRegistry())

        collector.record_job_enqueued("emails", count=2)
        collector.record_job_finished("emails", "succeeded", 0.2)
        collector.record_backend_error("emails", "pop")
        collector.record_slot_restart("emails")
        collector.update_queue_depth("emails", QueueStats(pending=4, retrying=1))

        output = collector.get_metrics().decode()
        assert 'jobs_enqueued_total{queue="emails"} 2.0' in output
        assert 'jobs_finished_total{queue="emails",outcome="succeeded"} 1.0' in output
        assert 'backend_errors_total{queue="emails",operation="pop"} 1.0' in output
        assert 'worker_slot_restarts_total{queue="emails"} 1.0' in output
        assert 'job_queue_depth{queue="emails",state="pending"} 4.0' in output

    def test_get_metrics_is_shared(self):
        """Test the global collector is created once."""
        assert get_metrics() is get_metrics()


class TestTracing:
    """Tests for tracing."""

    def test_tracer_without_setup(self):
        """Test spans can be opened when tracing is not configured."""
        with get_tracer().start_as_current_span("execute_job") as span:
            span.set_attribute("job_id", "abc")

    def test_shutdown_without_setup(self):
        """Test shutting down tracing that was never set up is a no-op."""
        shutdown_tracing()
        shutdown_tracing()
