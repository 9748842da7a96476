"""
Unit tests for the job model and retry policy.
"""

import pytest
from pydantic import ValidationError

from jobqueue.constants import DEFAULT_PRIORITY, JobOutcome
from jobqueue.exceptions import JobSerializationError
from jobqueue.retry import RetryPolicy
from jobqueue.types import ExecutionResult, Job, now_ms


class TestJob:
    """Tests for Job."""

    def test_defaults(self):
        """Test a new job starts with fresh scheduling metadata."""
        before = now_ms()
        job = Job(payload={"to": "user@example.com"})

        assert job.id
        assert job.attempts == 0
        assert job.max_retries == 3
        assert job.priority == DEFAULT_PRIORITY
        assert job.next_retry_at is None
        assert job.last_error is None
        assert job.metadata == {}
        assert job.created_at >= before

    def test_ids_are_unique(self):
        """Test each job gets its own id."""
        assert Job().id != Job().id

    def test_priority_bounds(self):
        """Test priority must be within 0-255."""
        Job(priority=0)
        Job(priority=255)

        with pytest.raises(ValidationError):
            Job(priority=256)
        with pytest.raises(ValidationError):
            Job(priority=-1)

    def test_should_retry(self):
        """Test retries are allowed until attempts reach max_retries."""
        job = Job(max_retries=2)
        assert job.should_retry() is True

        job.attempts = 2
        assert job.should_retry() is False

    def test_zero_max_retries_never_retries(self):
        """Test max_retries=0 dead-letters on first failure."""
        assert Job(max_retries=0).should_retry() is False

    def test_prepare_retry(self):
        """Test prepare_retry increments attempts and sets the gate."""
        job = Job()
        before = now_ms()

        job.prepare_retry(5)

        assert job.attempts == 1
        assert job.next_retry_at >= before + 5000
        assert job.is_ready() is False

    def test_prepare_retry_never_moves_backwards(self):
        """Test next_retry_at is non-decreasing even with a shorter delay."""
        job = Job()
        job.prepare_retry(60)
        first = job.next_retry_at

        job.prepare_retry(0)

        assert job.next_retry_at >= first
        assert job.attempts == 2

    def test_is_ready(self):
        """Test the not-before gate."""
        now = now_ms()

        assert Job().is_ready(now) is True
        assert Job(next_retry_at=now - 1).is_ready(now) is True
        assert Job(next_retry_at=now).is_ready(now) is True
        assert Job(next_retry_at=now + 1000).is_ready(now) is False

    def test_json_record_keeps_every_field(self):
        """Test the stored record restores the full job."""
        job = Job(
            payload={"job_type": "echo", "data": {"n": 1}},
            attempts=2,
            max_retries=5,
            next_retry_at=now_ms() + 1000,
            last_error="timeout",
            priority=1,
            metadata={"trace": "abc"},
        )

        assert Job.from_json(job.to_json()) == job

    def test_unserializable_payload(self):
        """Test serialization errors are reported as JobSerializationError."""
        job = Job(payload={"callback": object()})

        with pytest.raises(JobSerializationError):
            job.to_json()

    def test_malformed_record(self):
        """Test deserialization errors are reported as JobSerializationError."""
        with pytest.raises(JobSerializationError):
            Job.from_json('{"priority": "not-a-number"')


class TestExecutionResult:
    """Tests for ExecutionResult."""

    def test_constructors(self):
        """Test the three outcome constructors."""
        assert ExecutionResult.success().outcome == JobOutcome.SUCCESS
        assert ExecutionResult.success().is_success is True

        retry = ExecutionResult.retryable("connection reset")
        assert retry.outcome == JobOutcome.RETRY
        assert retry.error == "connection reset"
        assert retry.is_success is False

        terminal = ExecutionResult.terminal("malformed address")
        assert terminal.outcome == JobOutcome.TERMINAL
        assert terminal.error == "malformed address"


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_backoff_doubles(self):
        """Test attempts 0..3 yield 5s, 10s, 20s, 40s."""
        policy = RetryPolicy(base_delay_seconds=5, max_delay_seconds=300)

        assert [policy.get_delay(n) for n in range(4)] == [5, 10, 20, 40]

    def test_backoff_is_capped(self):
        """Test the delay never exceeds max_delay_seconds."""
        policy = RetryPolicy(base_delay_seconds=5, max_delay_seconds=300)

        assert policy.get_delay(6) == 300
        assert policy.get_delay(20) == 300

    def test_backoff_is_non_decreasing(self):
        """Test successive delays never shrink."""
        policy = RetryPolicy(base_delay_seconds=0.5, max_delay_seconds=30)
        delays = [policy.get_delay(n) for n in range(12)]

        assert delays == sorted(delays)

    def test_busy_loop_detection(self):
        """Test zero delays are flagged as a busy loop."""
        assert RetryPolicy(0, 0).is_busy_loop is True
        assert RetryPolicy(0, 1).is_busy_loop is False
        assert RetryPolicy().is_busy_loop is False
