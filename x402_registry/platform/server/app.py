"""FastAPI application factory and server configuration.

This module creates and configures the FastAPI application with all middleware,
routes, and lifecycle management.
"""

import asyncio
import logging
import os
import signal
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from opentelemetry import propagate
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor

from x402_registry.platform.constants import SERVICE_NAME, USER_AGENT
from x402_registry.platform.database.repositories import (
    SqlAgentStore,
    SqlCallLog,
    SqlEndpointRepository,
    SqlInvoiceRepository,
    SqlPaymentLedger,
    SqlSubscriptionRepository,
)
from x402_registry.platform.database.setup import close_db, setup_db
from x402_registry.platform.observability import correlation_id_ctx
from x402_registry.platform.observability import errors as bugsnag
from x402_registry.platform.observability.logging import configure_logging
from x402_registry.platform.observability.metrics import prometheus_middleware
from x402_registry.platform.observability.tracing import initialize_tracing
from x402_registry.platform.server.exception_handlers import add_exception_handlers
from x402_registry.platform.server.health import HealthCheck
from x402_registry.platform.server.middlewares import REQUEST_ID_HEADER, CorrelationIdMiddleware
from x402_registry.platform.server.routes import root as root_router
from x402_registry.platform.settings import ExecutionMode, PaymentVerificationMode, Settings
from x402_registry.registry.analytics import AnalyticsService, CallLog, InMemoryCallLog
from x402_registry.registry.catalog import AgentCatalog, AgentStore, InMemoryAgentStore
from x402_registry.registry.compliance import ComplianceChecker
from x402_registry.registry.endpoints import (
    EndpointRepository,
    EndpointService,
    InMemoryEndpointRepository,
    X402Prober,
)
from x402_registry.registry.invoices import InMemoryInvoiceRepository, InvoiceRepository, InvoiceService
from x402_registry.registry.invokers import AgentInvoker, HttpAgentInvoker, SimulatedInvoker
from x402_registry.registry.orchestrator import ExecutionPolicy, Orchestrator
from x402_registry.registry.payments import (
    InMemoryPaymentLedger,
    PaymentLedger,
    PaymentVerifier,
    StacksApiClient,
    StacksPaymentVerifier,
    TrustingVerifier,
)
from x402_registry.registry.seed import seed_agents, seed_endpoints
from x402_registry.registry.subscriptions import (
    InMemorySubscriptionRepository,
    SubscriptionRepository,
    SubscriptionService,
)

logger = logging.getLogger(__name__)


async def _inject_trace_context(request: httpx.Request) -> None:
    """Propagate trace context and the request's correlation id to outgoing calls.

    Must be async because httpx AsyncClient awaits event hooks.
    """
    propagate.inject(request.headers)

    correlation_id = correlation_id_ctx.get()
    if correlation_id:
        request.headers[REQUEST_ID_HEADER] = correlation_id


def _build_invoker(settings: Settings, http_client: httpx.AsyncClient) -> AgentInvoker:
    if settings.execution.mode == ExecutionMode.HTTP:
        return HttpAgentInvoker(http_client, timeout_seconds=settings.execution.call_timeout)
    return SimulatedInvoker()


def _build_verifier(settings: Settings, stacks_api: StacksApiClient, ledger: PaymentLedger) -> PaymentVerifier:
    if settings.payments.verification == PaymentVerificationMode.STACKS:
        return StacksPaymentVerifier(stacks_api, recipient=settings.registry.wallet, ledger=ledger)
    return TrustingVerifier()


def execution_policy(settings: Settings) -> ExecutionPolicy:
    return ExecutionPolicy(
        fee_bps=settings.registry.fee_bps,
        recipient=settings.registry.wallet,
        call_timeout=settings.execution.call_timeout,
        overall_timeout=settings.execution.overall_timeout,
        retry_attempts=settings.execution.retry_attempts,
        retry_backoff=settings.execution.retry_backoff,
        retry_max_backoff=settings.execution.retry_max_backoff,
    )


async def setup_registry(app: FastAPI) -> None:
    """Build the catalog, orchestrator and registry services into ``app.state``.

    Records live in PostgreSQL when a primary database is connected and in
    process memory otherwise.
    """
    settings: Settings = app.state.settings
    http_client: httpx.AsyncClient = app.state.http_client
    db_engine = app.state.db_engine

    agent_store: AgentStore
    endpoint_repository: EndpointRepository
    invoice_repository: InvoiceRepository
    subscription_repository: SubscriptionRepository
    call_log: CallLog
    ledger: PaymentLedger
    if db_engine is not None:
        agent_store = SqlAgentStore(db_engine)
        endpoint_repository = SqlEndpointRepository(db_engine)
        invoice_repository = SqlInvoiceRepository(db_engine)
        subscription_repository = SqlSubscriptionRepository(db_engine)
        call_log = SqlCallLog(db_engine)
        ledger = SqlPaymentLedger(db_engine)
    else:
        agent_store = InMemoryAgentStore()
        endpoint_repository = InMemoryEndpointRepository()
        invoice_repository = InMemoryInvoiceRepository()
        subscription_repository = InMemorySubscriptionRepository()
        call_log = InMemoryCallLog()
        ledger = InMemoryPaymentLedger()

    catalog = AgentCatalog(agent_store)
    loaded = await catalog.load()
    logger.info(f"Loaded {loaded} agent(s) into the catalog")

    if settings.registry.seed:
        await seed_agents(catalog)
        await seed_endpoints(endpoint_repository)

    stacks_api = StacksApiClient(
        http_client,
        base_url=settings.payments.stacks_api_url,
        timeout_seconds=settings.payments.timeout,
    )

    verifier = _build_verifier(settings, stacks_api, ledger)
    endpoint_service = EndpointService(
        endpoint_repository,
        X402Prober(http_client, timeout_seconds=settings.payments.probe_timeout),
        public_base_url=settings.registry.public_base_url,
    )

    app.state.catalog = catalog
    app.state.stacks_api = stacks_api
    app.state.endpoint_service = endpoint_service
    app.state.orchestrator = Orchestrator(
        catalog,
        invoker=_build_invoker(settings, http_client),
        verifier=verifier,
        policy=execution_policy(settings),
    )
    app.state.invoice_service = InvoiceService(invoice_repository, ledger)
    app.state.subscription_service = SubscriptionService(
        subscription_repository, verifier, endpoint_service, recipient=settings.registry.wallet
    )
    app.state.analytics_service = AnalyticsService(call_log, endpoint_service)
    app.state.compliance_checker = ComplianceChecker(http_client, timeout_seconds=settings.payments.probe_timeout)


def lifespan_closure(settings):
    @asynccontextmanager
    async def lifespan(app):
        """
        Use this to initialize all of the singleton dependencies and shared
        objects.  i.e. db, reporters, bugsnag, etc
        """
        if settings.bugsnag.release_stage in ["production", "development"]:
            signal_handler = SignalHandler(app)
            signal_handler.register_signal_handler()

        # Configure structured logging (JSON in prod/dev, console in local)
        if settings.app_http.log_json is not None:
            json_output = settings.app_http.log_json
        else:
            json_output = settings.bugsnag.release_stage != "local"
        configure_logging(settings.app_http.log_level, json_output=json_output)

        # after logging: configure_logging replaces the root handlers
        await bugsnag.initialize_bugsnag(
            settings.bugsnag.api_key,
            settings.bugsnag.release_stage,
            app_version=settings.registry.version,
        )

        app.state.settings = settings

        # Shared HTTP client for agents, endpoint probes and the Stacks API
        app.state.http_client = httpx.AsyncClient(
            timeout=30.0,  # Default timeout, can be overridden per-request
            limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
            headers={"User-Agent": USER_AGENT},
            event_hooks={"request": [_inject_trace_context]},
        )

        await setup_db(app)

        if settings.opentelemetry.enabled:
            initialize_tracing(
                app_name=SERVICE_NAME,
                host=settings.opentelemetry.host,
                port=settings.opentelemetry.port,
                instrumentors={LoggingInstrumentor(): {"set_logging_format": True}},
            )
            if app.state.db_engine is not None:
                SQLAlchemyInstrumentor().instrument(  # type: ignore
                    engine=app.state.db_engine.get_engine().sync_engine
                )

        await setup_registry(app)

        HealthCheck.enable()
        try:
            yield
        finally:
            await app.state.http_client.aclose()
            await close_db(app)

    return lifespan


def create_app(settings: Settings):
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings instance

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="x402 Registry",
        version=settings.registry.version,
        lifespan=lifespan_closure(settings),
    )
    app.add_middleware(CorrelationIdMiddleware)
    app.middleware("http")(prometheus_middleware)
    if settings.opentelemetry.enabled:
        FastAPIInstrumentor.instrument_app(app, excluded_urls=settings.opentelemetry.excluded_urls)

    add_exception_handlers(app)

    # Platform routes (health, metrics) and the registry API
    app.include_router(root_router)

    return app


class SignalHandler:
    def __init__(self, app: FastAPI):
        self.app = app

    async def handle_exit(self):
        """
        Handle the exit of the server
        Do NOT use FastAPI @app.on_event("shutdown") or lifespan
        The problem with this method is, it is invoked *after* server
        stops accepting request, so it does not give us any time to
        drain requests in progress and DNS cache to refresh
        """
        HealthCheck.disable()
        for _ in range(20):
            logging.info("Shutting down...")
            await asyncio.sleep(1)

        # stop service successfully
        os.kill(os.getpid(), signal.SIGUSR1)

    def signal_handler(self):
        """
        Signal handler function
        """
        asyncio.create_task(self.handle_exit())

    def register_signal_handler(self) -> None:
        """
        Register signal handlers for the server
        """
        loop = asyncio.get_running_loop()
        for sig in [signal.SIGINT, signal.SIGTERM]:
            loop.add_signal_handler(sig, self.signal_handler)
