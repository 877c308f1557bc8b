"""OpenTelemetry tracing setup.

Spans are exported over OTLP/gRPC in batches. Instrumentors are passed in with
the keyword arguments their ``instrument`` call needs.
"""

import logging
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.instrumentor import BaseInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME as SERVICE_NAME_ATTRIBUTE
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

logger = logging.getLogger(__name__)


def initialize_tracing(
    app_name: str,
    host: str,
    port: int,
    instrumentors: dict[BaseInstrumentor, dict[str, Any]] | None = None,
) -> TracerProvider:
    """Install a global tracer provider exporting to ``host:port``.

    Args:
        app_name: Reported as the ``service.name`` resource attribute
        host: OTLP collector host
        port: OTLP collector gRPC port
        instrumentors: Instrumentor -> kwargs for its ``instrument`` call

    Returns:
        The installed tracer provider
    """
    provider = TracerProvider(resource=Resource.create({SERVICE_NAME_ATTRIBUTE: app_name}))
    exporter = OTLPSpanExporter(endpoint=f"{host}:{port}", insecure=True)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    for instrumentor, kwargs in (instrumentors or {}).items():
        if not instrumentor.is_instrumented_by_opentelemetry:
            instrumentor.instrument(tracer_provider=provider, **kwargs)

    logger.info(f"Tracing initialized, exporting to {host}:{port}")
    return provider
