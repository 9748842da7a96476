"""
OpenTelemetry tracing setup.

Workers open one ``execute_job`` span per attempt. Without ``setup_tracing``
those spans go to the global no-op provider.
"""

import logging

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Tracer

from jobqueue import __version__
from jobqueue.config import Settings, get_settings

logger = logging.getLogger(__name__)

_tracer: Tracer | None = None
_provider: TracerProvider | None = None


def setup_tracing(
    settings: Settings | None = None,
    enable_console_export: bool = False,
) -> Tracer:
    """
    Install a tracer provider that exports spans over OTLP.

    Args:
        settings: Settings to use. Defaults to the cached environment settings.
        enable_console_export: If True, also print spans to stdout.

    Returns:
        Tracer: The tracer instance.
    """
    global _tracer, _provider

    settings = settings or get_settings()

    provider = TracerProvider(
        resource=Resource.create(
            {
                "service.name": settings.otel_service_name,
                "service.version": __version__,
                "queue.name": settings.queue_name,
                "queue.backend": settings.queue_backend,
            }
        )
    )

    try:
        exporter = OTLPSpanExporter(
            endpoint=settings.otel_exporter_otlp_endpoint,
            insecure=True,
        )
        provider.add_span_processor(BatchSpanProcessor(exporter))
    except Exception:
        logger.warning(
            "OTLP exporter unavailable, spans will not be exported",
            exc_info=True,
            extra={"endpoint": settings.otel_exporter_otlp_endpoint},
        )

    if enable_console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)

    _provider = provider
    _tracer = trace.get_tracer("jobqueue.worker", __version__)

    logger.info(
        "Tracing enabled",
        extra={"endpoint": settings.otel_exporter_otlp_endpoint},
    )
    return _tracer


def shutdown_tracing() -> None:
    """Flush buffered spans. Called once when a worker process exits."""
    global _tracer, _provider

    if _provider is None:
        return
    _provider.shutdown()
    _provider = None
    _tracer = None


def get_tracer() -> Tracer:
    """Get the worker tracer, or a no-op one when tracing is not set up."""
    if _tracer is None:
        return trace.get_tracer("jobqueue.worker", __version__)
    return _tracer
