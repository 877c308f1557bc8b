"""Prometheus metrics collection and HTTP middleware.

This module provides Prometheus metrics integration including HTTP request
duration histograms, custom timing metrics for internal operations, and the
registry metrics for agent calls, executions and payment demands.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from time import monotonic
from typing import NamedTuple

import prometheus_client


class HTTPLabels(NamedTuple):
    method: str
    path: str
    http_status: str


# Maybe kinda optimized. Better than templating a string at least.
_NXX_LUT = ["1XX", "2XX", "3XX", "4XX", "5XX"]


def http_status_nxx(status: int) -> str:
    """A coarser 2XX, 4XX, 5XX"""
    return _NXX_LUT[status // 100 - 1]


class OperationLabels(NamedTuple):
    method: str
    path: str
    operation: str


BUCKETS = (
    # these are log spaced with 1 sig-fig rounding so there are 3 per decade
    # 2 div/decade = 1,       3.16,       10
    # 3 div/decade = 1,   2.15,   4.64,   10
    # 4 div/decade = 1, 1.78, 3.16, 5.62, 10
    0.0002,  # 200 μs
    0.0005,
    0.001,  # 1 ms
    0.002,
    0.005,
    0.01,
    0.02,
    0.05,
    0.1,
    0.2,
    0.5,
    1,
    2,
    5,
    10,
    20,  # default envoy timeout is 15 seconds, bin up to that time
    float("inf"),
)


def get_path(routes, scope) -> str:
    """Extract the matched route path from a request scope.

    Args:
        routes: List of FastAPI/Starlette route objects
        scope: ASGI request scope dictionary

    Returns:
        The matched route path template, or "path-not-found" if no match
    """
    path = "path-not-found"
    for route in routes:
        _, matches = route.matches(scope)
        if len(matches) > 0:
            path = route.path
    return path


async def prometheus_middleware(request, call_next):
    """HTTP middleware that records request duration metrics.

    Measures the time taken to process each request and records it
    in a Prometheus histogram with method, path, and status labels.

    Args:
        request: The incoming HTTP request
        call_next: The next middleware/handler in the chain

    Returns:
        The HTTP response from the downstream handler
    """
    start_time = monotonic()
    response = await call_next(request)
    elapsed_sec = monotonic() - start_time
    path = get_path(request.app.routes, request.scope)

    labels = HTTPLabels(
        method=request.method,
        path=path,
        http_status=http_status_nxx(response.status_code),
    )
    http_histogram.labels(*labels).observe(elapsed_sec)

    return response


def setup_metrics_factory(registry, name, documentation, labelnames):
    """Create a Prometheus histogram with standard bucket configuration.

    Args:
        registry: Prometheus registry to register the metric with
        name: Metric name (e.g., "http_request_duration_seconds")
        documentation: Human-readable metric description
        labelnames: Tuple of label names for the histogram

    Returns:
        Configured Prometheus Histogram instance
    """
    prom_histogram = prometheus_client.Histogram(
        name=name,
        documentation=documentation,
        labelnames=labelnames,
        registry=registry,
        buckets=BUCKETS,
    )

    return prom_histogram


def setup_http_metrics(registry):
    """Create the HTTP request duration histogram.

    Args:
        registry: Prometheus registry to register the metric with

    Returns:
        Histogram for tracking HTTP request durations by method, path, and status
    """
    prom_histogram = setup_metrics_factory(
        registry,
        name="http_request_duration_seconds",
        documentation="Request duration (seconds)",
        labelnames=HTTPLabels._fields,
    )

    return prom_histogram


def setup_operation_metrics(registry):
    """Create the registry operation duration histogram.

    Covers in-process work such as ranking and planning, labelled by the
    route that triggered it.
    """
    return setup_metrics_factory(
        registry,
        name="registry_operation_duration_seconds",
        documentation="Registry operation duration (seconds)",
        labelnames=OperationLabels._fields,
    )


def ctx_histogram_timer(labels: OperationLabels):
    """Time a block, or decorate a function, under ``labels``.

    ```
    with ctx_histogram_timer(OperationLabels("POST", "/agents/recommend", "recommend")):
        rank()
    ```
    """
    return operation_histogram.labels(*labels).time()


def timing_metrics(request, operation):
    """``ctx_histogram_timer`` labelled from the current request's method and route."""
    path = get_path(request.app.routes, request.scope)
    return ctx_histogram_timer(OperationLabels(method=request.method, path=path, operation=operation))


class InvocationLabels(NamedTuple):
    agent_id: str
    outcome: str


class ExecutionLabels(NamedTuple):
    flow: str
    status: str


class PaymentDemandLabels(NamedTuple):
    flow: str
    token: str


def setup_invocation_metrics(registry):
    """Create the agent invocation duration histogram."""
    return setup_metrics_factory(
        registry,
        name="agent_invocation_duration_seconds",
        documentation="Agent invocation duration (seconds)",
        labelnames=InvocationLabels._fields,
    )


def setup_execution_metrics(registry):
    return prometheus_client.Counter(
        name="registry_executions_total",
        documentation="Executions and chains by terminal status",
        labelnames=ExecutionLabels._fields,
        registry=registry,
    )


def setup_payment_demand_metrics(registry):
    return prometheus_client.Counter(
        name="registry_payment_demands_total",
        documentation="402 payment demands issued",
        labelnames=PaymentDemandLabels._fields,
        registry=registry,
    )


http_histogram = setup_http_metrics(registry=prometheus_client.REGISTRY)
operation_histogram = setup_operation_metrics(registry=prometheus_client.REGISTRY)
invocation_histogram = setup_invocation_metrics(registry=prometheus_client.REGISTRY)
execution_counter = setup_execution_metrics(registry=prometheus_client.REGISTRY)
payment_demand_counter = setup_payment_demand_metrics(registry=prometheus_client.REGISTRY)


@contextmanager
def collect_invocation_metrics(agent_id: str) -> Iterator[None]:
    """Time one agent call, labelled ``ok`` or ``error`` by how it ended.

    Usage:
        ```
        with collect_invocation_metrics(agent.id):
            await invoker.invoke(agent, task, budget)
        ```
    """
    start_time = monotonic()
    outcome = "error"
    try:
        yield
        outcome = "ok"
    finally:
        labels = InvocationLabels(agent_id=agent_id, outcome=outcome)
        invocation_histogram.labels(*labels).observe(monotonic() - start_time)


def record_execution(flow: str, status: str) -> None:
    execution_counter.labels(*ExecutionLabels(flow=flow, status=status)).inc()


def record_payment_demand(flow: str, token: str) -> None:
    payment_demand_counter.labels(*PaymentDemandLabels(flow=flow, token=token)).inc()


def metrics() -> tuple[bytes, str]:
    """Generate Prometheus metrics output for the /metrics endpoint.

    Returns:
        Tuple of (metrics_body, content_type) for the HTTP response
    """
    return (
        prometheus_client.generate_latest(prometheus_client.REGISTRY),
        prometheus_client.CONTENT_TYPE_LATEST,
    )
