"""Process-wide logging and tracing.

Spans and log records are exported to Axiom over OTLP/HTTP when an Axiom token
is configured; otherwise spans stay local and logs go to stderr only.
"""

from typing import Any, Dict, Optional
import functools
import asyncio
import logging
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from common.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
AXIOM_ENDPOINT = "https://api.axiom.co/v1"

logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, force=True)

# Set once by _initialize_telemetry
_initialized = False
axiom_tracer: Optional[trace.Tracer] = None
propagator: Optional[TraceContextTextMapPropagator] = None


def _axiom_headers() -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {settings.axiom_token}",
        "X-Axiom-Dataset": settings.axiom_dataset or "",
    }


def _initialize_telemetry():
    """Initialize telemetry once and only once."""
    global _initialized, axiom_tracer, propagator

    if _initialized:
        return

    resource = Resource(
        attributes={
            SERVICE_NAME: settings.otel_service_name,
            SERVICE_VERSION: settings.otel_service_version,
            "deployment.environment": settings.environment.value,
        }
    )
    export = bool(settings.axiom_token)

    tracer_provider = TracerProvider(resource=resource)
    if export:
        tracer_provider.add_span_processor(
            BatchSpanProcessor(
                OTLPSpanExporter(
                    endpoint=f"{AXIOM_ENDPOINT}/traces", headers=_axiom_headers()
                )
            )
        )
    trace.set_tracer_provider(tracer_provider)
    axiom_tracer = trace.get_tracer(settings.otel_service_name)
    propagator = TraceContextTextMapPropagator()

    if export:
        logger_provider = LoggerProvider(resource=resource)
        logger_provider.add_log_record_processor(
            BatchLogRecordProcessor(
                OTLPLogExporter(endpoint=f"{AXIOM_ENDPOINT}/logs", headers=_axiom_headers())
            )
        )
        set_logger_provider(logger_provider)
        logging.getLogger().addHandler(
            LoggingHandler(level=logging.INFO, logger_provider=logger_provider)
        )

    logging.getLogger().setLevel(logging.INFO)
    _initialized = True


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance. Ensures telemetry is initialized.
    Use this instead of logging.getLogger() directly.
    """
    if not _initialized:
        _initialize_telemetry()
    return logging.getLogger(name)


def _span_name(func, args) -> str:
    if args and hasattr(args[0], func.__name__):
        return f"{args[0].__class__.__name__}.{func.__name__}"
    return func.__name__


def trace_span(func):
    """Run the decorated sync or async callable inside a span named after it.

    Exceptions are recorded on the span and re-raised unchanged.
    """

    @functools.wraps(func)
    def sync_wrapper(*args, **kwargs):
        if not _initialized:
            _initialize_telemetry()
        with axiom_tracer.start_as_current_span(_span_name(func, args)):
            return func(*args, **kwargs)

    @functools.wraps(func)
    async def async_wrapper(*args, **kwargs):
        if not _initialized:
            _initialize_telemetry()
        with axiom_tracer.start_as_current_span(_span_name(func, args)):
            return await func(*args, **kwargs)

    if asyncio.iscoroutinefunction(func):
        return async_wrapper
    return sync_wrapper


def create_span_with_context(
    span_name: str, trace_headers: Optional[Dict[str, str]] = None
):
    """Start a span continuing the trace carried in message headers, if any."""
    if not _initialized:
        _initialize_telemetry()
    context = propagator.extract(trace_headers) if trace_headers else None
    return axiom_tracer.start_as_current_span(span_name, context=context)


def inject_trace_context() -> Dict[str, str]:
    """Current trace context as message headers, so a consumer can continue the trace."""
    if not _initialized:
        _initialize_telemetry()
    headers: Dict[str, str] = {}
    propagator.inject(headers)
    return headers


def log_span_event(message: str, attributes: Optional[Dict[str, Any]] = None):
    """Record message as an event on the current span and log it at info level."""
    attributes = attributes or {}
    current_span = trace.get_current_span()
    if current_span.is_recording():
        current_span.add_event(message, attributes=attributes)
    get_logger(__name__).info(message, extra={"attributes": attributes})
