"""
Storage backends.
Contains the backend interface and its in-memory and Redis implementations.
"""

from jobqueue.backends.base import Backend
from jobqueue.backends.durable import DurableBackend
from jobqueue.backends.memory import MemoryBackend
from jobqueue.config import Settings, get_settings


def create_backend(settings: Settings | None = None) -> Backend:
    """
    Create the backend selected by configuration.

    Args:
        settings: Settings to use. Defaults to the cached environment settings.

    Returns:
        A MemoryBackend or DurableBackend.
    """
    settings = settings or get_settings()

    if settings.queue_backend == "redis":
        return DurableBackend.from_url(settings.redis_url, settings.queue_name)
    return MemoryBackend()


__all__ = [
    "Backend",
    "MemoryBackend",
    "DurableBackend",
    "create_backend",
]
