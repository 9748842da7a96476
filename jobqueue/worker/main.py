"""
Worker process entrypoint.

Builds the configured queue, runs a HandlerExecutor worker against it and
drains gracefully on SIGTERM/SIGINT.
"""

import asyncio
import logging
import signal

from jobqueue.config import get_settings
from jobqueue.observability.logging import setup_logging
from jobqueue.observability.metrics import setup_metrics
from jobqueue.observability.tracing import setup_tracing, shutdown_tracing
from jobqueue.queue import Queue
from jobqueue.worker.handlers import HandlerExecutor, list_handlers

logger = logging.getLogger(__name__)


async def run_async() -> None:
    """Run the worker asynchronously."""
    settings = get_settings()

    setup_logging(settings)
    setup_metrics(settings.prometheus_port if settings.metrics_enabled else None)
    if settings.otel_enabled:
        setup_tracing(settings)

    queue = Queue.from_settings(settings)
    worker = queue.worker(HandlerExecutor())

    logger.info(
        "Worker process starting",
        extra={"backend": settings.queue_backend, "handlers": list_handlers()},
    )

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(worker.stop())
        )

    try:
        await worker.run()
    finally:
        await queue.close()
        shutdown_tracing()


def run() -> None:
    """Run the worker."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
