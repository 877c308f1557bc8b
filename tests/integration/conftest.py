"""Integration test fixtures.

This module provides shared fixtures for integration tests:
- Route/handler tests against an app wired with in-memory stores
- Outbound HTTP (agent endpoints, x402 probes, Stacks API) mocked with respx

For true end-to-end tests with a real database, see tests/e2e/.
"""

from collections.abc import Generator

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from x402_registry.platform.server.exception_handlers import add_exception_handlers
from x402_registry.platform.server.health import HealthCheck
from x402_registry.platform.server.routes import root as root_router
from x402_registry.platform.settings import (
    AppHTTPSettings,
    BugsnagSettings,
    OpenTelemetrySettings,
    RegistrySettings,
    Settings,
)
from x402_registry.registry.analytics import AnalyticsService, InMemoryCallLog
from x402_registry.registry.catalog import AgentCatalog, InMemoryAgentStore
from x402_registry.registry.compliance import ComplianceChecker
from x402_registry.registry.endpoints import EndpointService, InMemoryEndpointRepository, X402Prober
from x402_registry.registry.invoices import InMemoryInvoiceRepository, InvoiceService
from x402_registry.registry.invokers import SimulatedInvoker
from x402_registry.registry.orchestrator import ExecutionPolicy, Orchestrator
from x402_registry.registry.payments import InMemoryPaymentLedger, StacksApiClient, TrustingVerifier
from x402_registry.registry.subscriptions import InMemorySubscriptionRepository, SubscriptionService

STACKS_API_URL = "https://stacks.test"
PUBLIC_BASE_URL = "https://registry.test"

# =============================================================================
# Registry Fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Create settings with canned configuration values."""
    return Settings(
        app_http=AppHTTPSettings(),
        opentelemetry=OpenTelemetrySettings(enabled=False),
        bugsnag=BugsnagSettings(api_key="test-key", release_stage="local"),
        registry=RegistrySettings(public_base_url=PUBLIC_BASE_URL, seed=False),
    )


@pytest.fixture
def http_client() -> httpx.AsyncClient:
    """Outbound client shared by the prober and the Stacks API client.

    Requests are served by respx in the tests that make them.
    """
    return httpx.AsyncClient()


@pytest.fixture
def catalog() -> AgentCatalog:
    """Empty catalog; tests register agents through the API."""
    return AgentCatalog(InMemoryAgentStore())


@pytest.fixture
def endpoint_repository() -> InMemoryEndpointRepository:
    return InMemoryEndpointRepository()


# =============================================================================
# FastAPI App Fixtures (Shallow - no middleware, no lifespan)
# =============================================================================


@pytest.fixture
def test_app(
    test_settings: Settings,
    http_client: httpx.AsyncClient,
    catalog: AgentCatalog,
    endpoint_repository: InMemoryEndpointRepository,
) -> FastAPI:
    """Create a minimal test FastAPI app for integration tests.

    This is intentionally SHALLOW - no middleware, no lifespan. The registry
    services are placed in app.state directly, the way the lifespan would.
    """
    app = FastAPI()
    add_exception_handlers(app)

    stacks_api = StacksApiClient(http_client, base_url=STACKS_API_URL)
    app.state.settings = test_settings
    app.state.catalog = catalog
    app.state.stacks_api = stacks_api
    app.state.orchestrator = Orchestrator(
        catalog,
        invoker=SimulatedInvoker(),
        verifier=TrustingVerifier(),
        policy=ExecutionPolicy(retry_backoff=0, retry_max_backoff=0),
    )
    endpoint_service = EndpointService(
        endpoint_repository,
        X402Prober(http_client),
        public_base_url=PUBLIC_BASE_URL,
    )
    app.state.endpoint_service = endpoint_service
    app.state.invoice_service = InvoiceService(InMemoryInvoiceRepository(), InMemoryPaymentLedger())
    app.state.subscription_service = SubscriptionService(
        InMemorySubscriptionRepository(), TrustingVerifier(), endpoint_service
    )
    app.state.analytics_service = AnalyticsService(InMemoryCallLog(), endpoint_service)
    app.state.compliance_checker = ComplianceChecker(http_client)

    app.include_router(root_router)
    return app


@pytest.fixture
def client(test_app: FastAPI) -> TestClient:
    """Create a test client for the test app.

    No context manager needed since we're not using lifespan.
    """
    return TestClient(test_app)


@pytest.fixture
def client_with_health_enabled(test_app: FastAPI) -> Generator[TestClient]:
    """Create a test client with health checks enabled."""
    HealthCheck.enable()
    yield TestClient(test_app)
    HealthCheck.disable()


@pytest.fixture
def client_with_health_disabled(test_app: FastAPI) -> Generator[TestClient]:
    """Create a test client with health checks disabled."""
    HealthCheck.disable()
    yield TestClient(test_app)


@pytest.fixture
def register_agent(client: TestClient):
    """Register an agent through the API and return its id."""

    def register(name: str, capabilities: list[str], base_price: int, token: str = "STX") -> str:
        response = client.post(
            "/agents/register",
            json={
                "name": name,
                "capabilities": capabilities,
                "owner": "SPOWNER",
                "pricing": {"model": "per-call", "basePrice": base_price, "token": token},
            },
        )
        assert response.status_code == 201, response.text
        return response.json()["agent"]["id"]

    return register
