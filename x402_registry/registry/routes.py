"""Registry HTTP endpoints.

Thin transport over the catalog, orchestrator and the registry services.
Errors raised by the registry core are rendered by the exception handlers
installed on the app.
"""

from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, Query, Request

from x402_registry.platform.observability.metrics import timing_metrics
from x402_registry.platform.server.dependencies.registry import (
    get_analytics_service,
    get_catalog,
    get_compliance_checker,
    get_endpoint_service,
    get_invoice_service,
    get_orchestrator,
    get_settings,
    get_stacks_api,
    get_subscription_service,
)
from x402_registry.platform.settings import Settings
from x402_registry.registry.analytics import AnalyticsService
from x402_registry.registry.capabilities import CAPABILITY_CATEGORIES
from x402_registry.registry.catalog import AgentCatalog
from x402_registry.registry.compliance import ComplianceChecker
from x402_registry.registry.endpoints import DEFAULT_SEARCH_LIMIT, EndpointQuery, EndpointService
from x402_registry.registry.errors import NotFoundError, OwnerRequiredError, ValidationError
from x402_registry.registry.invoices import InvoiceService, payment_instructions, payment_uri
from x402_registry.registry.models import (
    AgentRegistrationPayload,
    ChainRequest,
    EndpointRegistrationPayload,
    EndpointTestRequest,
    EndpointUpdatePayload,
    ExecutionRequest,
    InvoiceRequest,
    PaymentVerifyRequest,
    RecommendRequest,
    RecordCallRequest,
    SubscribeRequest,
    Token,
)
from x402_registry.registry.orchestrator import Orchestrator
from x402_registry.registry.payments import StacksApiClient
from x402_registry.registry.planning import RECOMMENDATION_PLAN_LIMIT, build_plan
from x402_registry.registry.selection import MAX_RECOMMENDATIONS, rank_agents
from x402_registry.registry.subscriptions import SubscriptionService

PAYMENT_PROOF_HEADER = "X-Payment-Proof"
OWNER_HEADER = "X-Owner-Address"

PaymentProof = Annotated[str | None, Header(alias=PAYMENT_PROOF_HEADER)]
OwnerAddress = Annotated[str | None, Header(alias=OWNER_HEADER)]

overview_router = APIRouter(tags=["overview"])
agents_router = APIRouter(prefix="/agents", tags=["agents"])
registry_router = APIRouter(prefix="/registry", tags=["registry"])
payments_router = APIRouter(prefix="/payments", tags=["payments"])
analytics_router = APIRouter(prefix="/analytics", tags=["analytics"])
dev_router = APIRouter(prefix="/dev", tags=["dev"])


def require_owner(owner: OwnerAddress = None) -> str:
    if not owner:
        raise OwnerRequiredError(OWNER_HEADER)
    return owner


# =============================================================================
# Overview
# =============================================================================


@overview_router.get("/")
async def index(settings: Settings = Depends(get_settings)) -> dict[str, Any]:
    return {
        "name": "x402 Registry",
        "version": settings.registry.version,
        "description": "Discover, register, and orchestrate x402-gated endpoints",
        "endpoints": {
            "GET /stats": "Platform statistics",
            "POST /registry/register": "Register your x402 endpoint",
            "GET /registry/search": "Search endpoints by tag/category",
            "GET /registry/discover": "Trending and featured endpoints",
            "GET /agents": "List all agents",
            "POST /agents/register": "Register an agent",
            "POST /agents/recommend": "Find agents for a task",
            "POST /agents/execute": "Execute a task across agents",
            "POST /agents/chain": "Run a chain of agents",
            "POST /payments/verify": "Verify a payment",
            "POST /payments/create-invoice": "Create a payment invoice",
            "POST /payments/subscribe": "Subscribe to an endpoint",
            "GET /analytics/my-endpoints": "Usage of your endpoints",
            "POST /dev/test-endpoint": "Check an endpoint for x402 compliance",
        },
        "tokens": [str(token) for token in Token],
        "network": settings.registry.network,
    }


@overview_router.get("/stats")
async def stats(
    catalog: AgentCatalog = Depends(get_catalog),
    endpoint_service: EndpointService = Depends(get_endpoint_service),
) -> dict[str, Any]:
    discovery = await endpoint_service.discover()
    total_calls_24h = await endpoint_service.total_calls_24h()
    return {
        "totalEndpoints": await endpoint_service.count(),
        "totalAgents": len(catalog),
        "totalCapabilities": len(catalog.capabilities()),
        "totalCalls24h": total_calls_24h,
        "topCategories": discovery["categories"],
        "featuredEndpoints": discovery["trending"][:3],
    }


# =============================================================================
# Agents
# =============================================================================


@agents_router.get("")
async def list_agents(catalog: AgentCatalog = Depends(get_catalog)) -> dict[str, Any]:
    agents = [agent.summary() for agent in catalog.all_agents()]
    return {"total": len(agents), "agents": agents}


@agents_router.get("/capabilities")
async def list_capabilities(catalog: AgentCatalog = Depends(get_catalog)) -> dict[str, Any]:
    capabilities = catalog.list_capabilities()
    return {
        "totalCapabilities": len(capabilities),
        "totalAgents": len(catalog),
        "capabilities": capabilities,
        "categories": list(CAPABILITY_CATEGORIES),
    }


@agents_router.post("/recommend")
async def recommend_agents(
    request: Request,
    payload: RecommendRequest,
    catalog: AgentCatalog = Depends(get_catalog),
) -> dict[str, Any]:
    """Rank agents by how much of the task they cover and sketch a plan."""
    task = (payload.task or "").strip()
    if not task:
        raise ValidationError("Task description required", fields=["task"])

    with timing_metrics(request, "recommend"):
        needed = payload.capabilities or catalog.taxonomy.infer(task)
        ranked = rank_agents(catalog, needed, payload.budget)
        plan = build_plan(task, ranked, limit=RECOMMENDATION_PLAN_LIMIT)

    return {
        "task": task,
        "inferredCapabilities": needed,
        "recommendations": [match.to_dict() for match in ranked[:MAX_RECOMMENDATIONS]],
        "executionPlan": plan.to_dict(),
        "estimatedCost": plan.total_cost,
    }


@agents_router.post("/register", status_code=201)
async def register_agent(
    payload: AgentRegistrationPayload,
    catalog: AgentCatalog = Depends(get_catalog),
) -> dict[str, Any]:
    agent = await catalog.register(payload)
    return {
        "success": True,
        "agent": {"id": agent.id, "name": agent.name, "capabilities": list(agent.capabilities)},
        "message": "Agent registered successfully",
    }


@agents_router.post("/execute")
async def execute_task(
    payload: ExecutionRequest,
    payment_proof: PaymentProof = None,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Execute a task across agents. Answers 402 until a payment proof is attached."""
    result = await orchestrator.execute(payload, payment_proof)
    return result.to_dict()


@agents_router.post("/chain")
async def run_chain(
    payload: ChainRequest,
    payment_proof: PaymentProof = None,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    result = await orchestrator.chain(payload, payment_proof)
    return result.to_dict()


@agents_router.get("/{agent_id}")
async def get_agent(agent_id: str, catalog: AgentCatalog = Depends(get_catalog)) -> dict[str, Any]:
    return catalog.get(agent_id).to_dict()


@agents_router.get("/{agent_id}/openapi")
async def get_agent_openapi(
    agent_id: str,
    catalog: AgentCatalog = Depends(get_catalog),
    settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Machine-readable description of how to call one agent."""
    agent = catalog.get(agent_id)
    return {
        "openapi": "3.0.0",
        "info": {"title": agent.name, "description": agent.description, "version": "1.0.0"},
        "servers": [{"url": f"{settings.registry.public_base_url.rstrip('/')}/agents"}],
        "paths": {
            f"/{agent.id}/execute": {
                "post": {
                    "summary": f"Execute {agent.name}",
                    "description": agent.description,
                    "requestBody": {
                        "required": True,
                        "content": {
                            "application/json": {
                                "schema": {
                                    "type": "object",
                                    "properties": {"task": {"type": "string"}, "params": {"type": "object"}},
                                }
                            }
                        },
                    },
                    "responses": {
                        "200": {"description": "Successful execution"},
                        "402": {"description": "Payment required"},
                    },
                }
            }
        },
        "x-capabilities": list(agent.capabilities),
        "x-pricing": agent.pricing.to_dict(),
        "x-payment": {"required": True, "token": str(agent.pricing.token), "amount": agent.base_price},
    }


# =============================================================================
# Endpoint registry
# =============================================================================


@registry_router.post("/register", status_code=201)
async def register_endpoint(
    payload: EndpointRegistrationPayload,
    endpoint_service: EndpointService = Depends(get_endpoint_service),
) -> dict[str, Any]:
    endpoint = await endpoint_service.register(payload)
    return {
        "success": True,
        "endpoint": {
            "id": endpoint.id,
            "url": endpoint.url,
            "name": endpoint.name,
            "verified": endpoint.verified,
            "registryUrl": endpoint_service.registry_url(endpoint.id),
        },
        "message": "Endpoint registered successfully! It will appear in search results.",
    }


@registry_router.get("/search")
async def search_endpoints(
    category: str | None = None,
    token: str | None = None,
    q: str | None = None,
    limit: Annotated[int, Query(ge=1, le=100)] = DEFAULT_SEARCH_LIMIT,
    offset: Annotated[int, Query(ge=0)] = 0,
    endpoint_service: EndpointService = Depends(get_endpoint_service),
) -> dict[str, Any]:
    query = EndpointQuery(category=category, token=token, q=q, limit=limit, offset=offset)
    return await endpoint_service.search(query)


@registry_router.get("/discover")
async def discover_endpoints(
    endpoint_service: EndpointService = Depends(get_endpoint_service),
) -> dict[str, Any]:
    return await endpoint_service.discover()


@registry_router.get("/{endpoint_id}")
async def get_endpoint(
    endpoint_id: str,
    endpoint_service: EndpointService = Depends(get_endpoint_service),
) -> dict[str, Any]:
    endpoint = await endpoint_service.get(endpoint_id)
    return endpoint.to_dict()


@registry_router.get("/{endpoint_id}/stats")
async def get_endpoint_stats(
    endpoint_id: str,
    endpoint_service: EndpointService = Depends(get_endpoint_service),
) -> dict[str, Any]:
    return await endpoint_service.stats(endpoint_id)


@registry_router.put("/{endpoint_id}")
async def update_endpoint(
    endpoint_id: str,
    payload: EndpointUpdatePayload,
    owner: OwnerAddress = None,
    endpoint_service: EndpointService = Depends(get_endpoint_service),
) -> dict[str, Any]:
    endpoint = await endpoint_service.update(endpoint_id, owner, payload)
    return {"success": True, "endpoint": endpoint.summary()}


@registry_router.delete("/{endpoint_id}")
async def delete_endpoint(
    endpoint_id: str,
    owner: OwnerAddress = None,
    endpoint_service: EndpointService = Depends(get_endpoint_service),
) -> dict[str, Any]:
    await endpoint_service.delete(endpoint_id, owner)
    return {"success": True, "message": "Endpoint removed"}


# =============================================================================
# Payments
# =============================================================================


@payments_router.post("/verify")
async def verify_payment(
    payload: PaymentVerifyRequest,
    stacks_api: StacksApiClient = Depends(get_stacks_api),
    invoice_service: InvoiceService = Depends(get_invoice_service),
) -> dict[str, Any]:
    """Look a transaction up on chain and check it against an invoice or explicit expectations.

    With ``invoiceId`` a matching transaction marks the invoice paid.
    """
    tx_id = (payload.tx_id or "").strip()
    if not tx_id:
        raise ValidationError("Transaction ID required", fields=["txId"])
    if payload.invoice_id:
        await invoice_service.get(payload.invoice_id)

    facts = await stacks_api.verify_transaction(tx_id)
    if facts is None:
        raise NotFoundError("Transaction", tx_id)
    if not facts.succeeded:
        return {"verified": False, "status": facts.status, "error": "Transaction not successful"}

    response: dict[str, Any]
    if payload.invoice_id:
        settlement = await invoice_service.settle(payload.invoice_id, facts)
        response = {
            "verified": settlement.verified,
            "invoice": settlement.invoice.id,
            "invoiceStatus": str(settlement.invoice.status_at(datetime.now(UTC))),
            "transaction": facts.to_dict(),
        }
        if settlement.mismatches:
            response["mismatches"] = settlement.mismatches
        return response

    mismatches = []
    if payload.expected_amount is not None and facts.amount < payload.expected_amount:
        mismatches.append("amount")
    if payload.recipient is not None and facts.recipient != payload.recipient:
        mismatches.append("recipient")
    if payload.memo is not None and payload.memo not in (facts.memo or ""):
        mismatches.append("memo")

    response = {"verified": not mismatches, "transaction": facts.to_dict()}
    if mismatches:
        response["mismatches"] = mismatches
    return response


@payments_router.post("/create-invoice", status_code=201)
async def create_invoice(
    payload: InvoiceRequest,
    invoice_service: InvoiceService = Depends(get_invoice_service),
) -> dict[str, Any]:
    invoice = await invoice_service.create(payload)
    return {
        "invoice": invoice.to_dict(),
        "paymentInstructions": payment_instructions(invoice),
        "qrData": payment_uri(invoice),
    }


@payments_router.post("/subscribe", status_code=201)
async def subscribe(
    payload: SubscribeRequest,
    payment_proof: PaymentProof = None,
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> dict[str, Any]:
    """Subscribe to an endpoint. Answers 402 until the plan is paid."""
    subscription = await subscription_service.subscribe(payload, payment_proof)
    return {"success": True, "subscription": subscription.to_dict()}


@payments_router.get("/subscription/{subscription_id}")
async def get_subscription(
    subscription_id: str,
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> dict[str, Any]:
    subscription = await subscription_service.get(subscription_id)
    return subscription.to_dict()


# =============================================================================
# Analytics
# =============================================================================


@analytics_router.post("/record-call", status_code=201)
async def record_call(
    payload: RecordCallRequest,
    analytics_service: AnalyticsService = Depends(get_analytics_service),
) -> dict[str, Any]:
    await analytics_service.record_call(payload)
    return {"success": True}


@analytics_router.get("/my-endpoints")
async def my_endpoints(
    owner: str = Depends(require_owner),
    analytics_service: AnalyticsService = Depends(get_analytics_service),
) -> dict[str, Any]:
    return await analytics_service.my_endpoints(owner)


@analytics_router.get("/revenue")
async def revenue(
    period: str = "7d",
    owner: str = Depends(require_owner),
    analytics_service: AnalyticsService = Depends(get_analytics_service),
) -> dict[str, Any]:
    return await analytics_service.revenue(owner, period)


@analytics_router.get("/callers")
async def callers(
    endpoint_id: Annotated[str | None, Query(alias="endpointId")] = None,
    owner: str = Depends(require_owner),
    analytics_service: AnalyticsService = Depends(get_analytics_service),
) -> dict[str, Any]:
    return await analytics_service.callers(owner, endpoint_id)


# =============================================================================
# Developer tools
# =============================================================================


@dev_router.post("/test-endpoint")
async def test_endpoint(
    payload: EndpointTestRequest,
    checker: ComplianceChecker = Depends(get_compliance_checker),
) -> dict[str, Any]:
    """Report how well a URL follows the x402 payment handshake."""
    return await checker.check(payload.url, payload.method)
