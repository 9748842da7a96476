"""
Job handlers registry and the executor that dispatches to it.

Handlers must be idempotent - delivery is at-least-once, so the same job may
be executed more than once after a crash between pop and complete.

Payloads handled by HandlerExecutor are dicts of the form
``{"job_type": "...", "data": {...}}``.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

import httpx

from jobqueue.types import ExecutionResult, Job

logger = logging.getLogger(__name__)

# Type alias for job handler functions
JobHandler = Callable[[Job], Awaitable[ExecutionResult]]

# Handler registry
_handlers: dict[str, JobHandler] = {}


def register_handler(job_type: str) -> Callable[[JobHandler], JobHandler]:
    """
    Decorator to register a job handler.

    Args:
        job_type: The job type this handler processes.

    Returns:
        Decorator function.

    Example:
        @register_handler("send_email")
        async def handle_send_email(job: Job) -> ExecutionResult:
            ...
    """
    def decorator(handler: JobHandler) -> JobHandler:
        _handlers[job_type] = handler
        logger.info(f"Registered handler for job type: {job_type}")
        return handler
    return decorator


def get_handler(job_type: str) -> JobHandler | None:
    """
    Get the handler for a job type.

    Args:
        job_type: The job type.

    Returns:
        The handler function or None if not found.
    """
    return _handlers.get(job_type)


def list_handlers() -> list[str]:
    """List all registered job types."""
    return list(_handlers.keys())


def _data(job: Job) -> dict:
    if isinstance(job.payload, dict):
        return job.payload.get("data") or {}
    return {}


# ============================================================================
# Built-in job handlers
# ============================================================================


@register_handler("echo")
async def handle_echo(job: Job) -> ExecutionResult:
    """
    Echo handler for testing.

    Simply returns the input payload as output.
    """
    logger.info(
        "Echo job executing",
        extra={"job_id": job.id, "attempt": job.attempts}
    )

    return ExecutionResult.success(output={"echo": job.payload})


@register_handler("sleep")
async def handle_sleep(job: Job) -> ExecutionResult:
    """
    Sleep handler for testing delays and timeouts.

    Payload data should contain:
    - duration_seconds: How long to sleep
    """
    duration = _data(job).get("duration_seconds", 1)

    logger.info(
        "Sleep job starting",
        extra={"job_id": job.id, "duration": duration}
    )

    await asyncio.sleep(duration)

    return ExecutionResult.success(output={"slept_for": duration})


@register_handler("failing_job")
async def handle_failing_job(job: Job) -> ExecutionResult:
    """
    Handler that always fails with a retryable error - for testing retries.
    """
    logger.info(
        "Failing job executing (will fail)",
        extra={"job_id": job.id, "attempt": job.attempts}
    )

    return ExecutionResult.retryable(f"Intentional failure on attempt {job.attempts}")


@register_handler("invalid_job")
async def handle_invalid_job(job: Job) -> ExecutionResult:
    """
    Handler that rejects its input - for testing terminal failures.
    """
    return ExecutionResult.terminal("Intentionally rejected payload")


@register_handler("http_request")
async def handle_http_request(job: Job) -> ExecutionResult:
    """
    Make an HTTP request.

    Payload data should contain:
    - url: The URL to request
    - method: HTTP method (GET, POST, etc.)
    - headers: Optional headers
    - body: Optional JSON request body

    Network errors and 5xx/429 responses are retryable; other 4xx responses
    and a missing url are terminal.
    """
    data = _data(job)
    url = data.get("url")
    method = data.get("method", "GET").upper()
    headers = data.get("headers", {})
    body = data.get("body")

    if not url:
        return ExecutionResult.terminal("Missing 'url' in payload")

    logger.info(
        "HTTP request job",
        extra={"job_id": job.id, "method": method, "url": url}
    )

    try:
        async with httpx.AsyncClient() as client:
            response = await client.request(
                method=method,
                url=url,
                headers=headers,
                json=body if method in ["POST", "PUT", "PATCH"] else None,
                timeout=30.0,
            )
    except httpx.HTTPError as e:
        return ExecutionResult.retryable(f"HTTP request failed: {e}")

    if response.is_success:
        return ExecutionResult.success(
            output={
                "status_code": response.status_code,
                "body": response.text[:1000],  # Truncate response
            }
        )

    error = f"HTTP {response.status_code}"
    if response.status_code >= 500 or response.status_code == 429:
        return ExecutionResult.retryable(error)
    return ExecutionResult.terminal(error)


class HandlerExecutor:
    """
    Executor that dispatches jobs to registered handlers by ``job_type``.

    A payload without a registered handler is a terminal failure: retrying
    cannot make a handler appear.
    """

    def __init__(self, default_job_type: str = "echo"):
        self.default_job_type = default_job_type

    async def run(self, job: Job) -> ExecutionResult:
        job_type = self.default_job_type
        if isinstance(job.payload, dict):
            job_type = job.payload.get("job_type", self.default_job_type)

        handler = get_handler(job_type)

        if handler is None:
            logger.error(
                f"No handler for job type: {job_type}",
                extra={"job_id": job.id}
            )
            return ExecutionResult.terminal(f"No handler registered for job type: {job_type}")

        return await handler(job)
