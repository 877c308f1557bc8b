"""FastAPI dependencies resolving the shared objects the lifespan puts in ``app.state``."""

from fastapi import Request

from x402_registry.platform.settings import Settings
from x402_registry.registry.analytics import AnalyticsService
from x402_registry.registry.catalog import AgentCatalog
from x402_registry.registry.compliance import ComplianceChecker
from x402_registry.registry.endpoints import EndpointService
from x402_registry.registry.invoices import InvoiceService
from x402_registry.registry.orchestrator import Orchestrator
from x402_registry.registry.payments import StacksApiClient
from x402_registry.registry.subscriptions import SubscriptionService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_catalog(request: Request) -> AgentCatalog:
    return request.app.state.catalog


def get_orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


def get_endpoint_service(request: Request) -> EndpointService:
    return request.app.state.endpoint_service


def get_stacks_api(request: Request) -> StacksApiClient:
    """Stacks API client used for on-chain payment lookups."""
    return request.app.state.stacks_api


def get_invoice_service(request: Request) -> InvoiceService:
    return request.app.state.invoice_service


def get_subscription_service(request: Request) -> SubscriptionService:
    return request.app.state.subscription_service


def get_analytics_service(request: Request) -> AnalyticsService:
    return request.app.state.analytics_service


def get_compliance_checker(request: Request) -> ComplianceChecker:
    return request.app.state.compliance_checker
