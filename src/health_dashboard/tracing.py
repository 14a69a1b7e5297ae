"""OpenTelemetry tracing for health fetches."""

from __future__ import annotations

import os

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from .config import TracingSettings
from .models import DateWindow

logger = structlog.get_logger(__name__)


def setup_tracing(settings: TracingSettings) -> bool:
    """Install an OTLP-exporting tracer provider for the fetch spans.

    Returns:
        True if tracing was configured, False otherwise.
    """
    if not settings.enabled:
        logger.debug("tracing_disabled")
        return False

    if os.getenv("OTEL_TRACES_EXPORTER", "otlp").lower() in {"none", ""}:
        logger.info("tracing_exporter_disabled")
        return False

    exporter = (
        OTLPSpanExporter(endpoint=settings.otlp_endpoint)
        if settings.otlp_endpoint
        else OTLPSpanExporter()
    )
    provider = TracerProvider(resource=Resource.create({"service.name": settings.service_name}))
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    logger.info(
        "tracing_configured",
        endpoint=settings.otlp_endpoint or "default",
        service_name=settings.service_name,
    )
    return True


def window_attributes(window: DateWindow) -> dict[str, str]:
    """Span attributes describing a fetch window."""
    return {
        "health.window.start": window.start.isoformat(),
        "health.window.end": window.end.isoformat(),
        "health.window.hours": f"{(window.end - window.start).total_seconds() / 3600:.2f}",
    }
