"""
Pytest configuration and shared fixtures.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any
from uuid import uuid4

import fakeredis
import pytest

from jobqueue.backends import DurableBackend, MemoryBackend
from jobqueue.config import Settings
from jobqueue.queue import Queue, QueueConfig


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        queue_backend="memory",
        queue_name="test-queue",
        log_level="DEBUG",
        log_format="console",
        worker_poll_interval_seconds=0.01,
        retry_base_delay_seconds=0.01,
        retry_max_delay_seconds=0.1,
    )


@pytest.fixture
def queue_config() -> QueueConfig:
    """Fast queue config for tests."""
    return QueueConfig(
        queue_name=f"test-{uuid4().hex[:8]}",
        concurrency=2,
        batch_size=5,
        poll_interval=0.01,
        base_retry_delay=0.01,
        max_retry_delay=0.1,
        job_timeout=2.0,
        backend_retry_delay=0.01,
    )


@pytest.fixture
def memory_backend() -> MemoryBackend:
    """Create an in-memory backend."""
    return MemoryBackend()


@pytest.fixture
def redis_client() -> Any:
    """Create an in-process fake Redis client with its own server."""
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def durable_backend(redis_client: Any) -> DurableBackend:
    """Create a Redis backend on the fake client."""
    return DurableBackend(redis_client, queue_name=f"test-{uuid4().hex[:8]}")


@pytest.fixture(params=["memory", "redis"])
def backend(request: pytest.FixtureRequest) -> Any:
    """Run a test against both backends."""
    if request.param == "memory":
        return request.getfixturevalue("memory_backend")
    return request.getfixturevalue("durable_backend")


@pytest.fixture
def queue(backend: Any, queue_config: QueueConfig) -> Queue:
    """Create a queue over each backend."""
    return Queue(backend, queue_config)


@pytest.fixture
def sample_payload() -> dict[str, Any]:
    """Create a sample job payload."""
    return {
        "job_type": "echo",
        "data": {"message": "Hello, World!"},
    }


async def _wait_until(
    predicate: Callable[[], Awaitable[bool]],
    timeout: float = 5.0,
    interval: float = 0.01,
) -> None:
    """Poll an async predicate until it holds or the timeout expires."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not await predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    """Helper that waits for an async condition."""
    return _wait_until
