"""Observability infrastructure module.

This module provides monitoring and error tracking:
- Structured logging with correlation IDs
- Prometheus metrics for HTTP and registry activity
- OpenTelemetry tracing
- Bugsnag error reporting
"""

from x402_registry.platform.observability.logging import (
    configure_logging,
    correlation_id_ctx,
)
from x402_registry.platform.observability.metrics import (
    BUCKETS,
    prometheus_middleware,
)

__all__ = [
    "BUCKETS",
    "configure_logging",
    "correlation_id_ctx",
    "prometheus_middleware",
]
