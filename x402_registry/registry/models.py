"""Registry domain types and inbound payloads.

Internal values (agents, plans, results) are frozen dataclasses. Inbound
request bodies are Pydantic models using camelCase aliases on the wire.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Token(StrEnum):
    """Settlement tokens accepted by the registry."""

    STX = "STX"
    SBTC = "sBTC"
    USDH = "USDh"


class PricingModel(StrEnum):
    PER_CALL = "per-call"
    PER_TOKEN = "per-token"
    FLAT = "flat"


class ExecutionStatus(StrEnum):
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


# =============================================================================
# Agents
# =============================================================================


@dataclass(frozen=True)
class Pricing:
    """Agent pricing.

    Attributes:
        model: How the price is applied
        base_price: Price in the smallest unit of ``token``
        token: Settlement token
    """

    model: PricingModel
    base_price: int
    token: Token

    def to_dict(self) -> dict[str, Any]:
        return {"model": str(self.model), "basePrice": self.base_price, "token": str(self.token)}


@dataclass(frozen=True)
class Agent:
    """A registered agent service description."""

    id: str
    name: str
    capabilities: tuple[str, ...]
    owner: str
    pricing: Pricing
    description: str = ""
    endpoints: tuple[str, ...] = ()
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    @property
    def base_price(self) -> int:
        return self.pricing.base_price

    @property
    def primary_endpoint(self) -> str | None:
        return self.endpoints[0] if self.endpoints else None

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "capabilities": list(self.capabilities),
            "pricing": self.pricing.to_dict(),
        }

    def to_dict(self) -> dict[str, Any]:
        return self.summary() | {
            "endpoints": list(self.endpoints),
            "owner": self.owner,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


# =============================================================================
# Plans and results
# =============================================================================


@dataclass(frozen=True)
class PlanStep:
    step: int
    agent_id: str
    agent_name: str
    action: str
    estimated_cost: int
    estimated_time: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step,
            "agentId": self.agent_id,
            "agentName": self.agent_name,
            "action": self.action,
            "estimatedCost": self.estimated_cost,
            "estimatedTime": self.estimated_time,
        }


@dataclass(frozen=True)
class ExecutionPlan:
    """Ordered, costed sequence of agent invocations."""

    steps: tuple[PlanStep, ...] = ()

    @property
    def total_cost(self) -> int:
        return sum(step.estimated_cost for step in self.steps)

    @property
    def estimated_time(self) -> int:
        return sum(step.estimated_time for step in self.steps)

    def to_dict(self) -> dict[str, Any]:
        return {
            "steps": [step.to_dict() for step in self.steps],
            "totalCost": self.total_cost,
            "estimatedTime": self.estimated_time,
        }


@dataclass(frozen=True)
class AgentUsage:
    """A completed agent call and what it cost."""

    agent_id: str
    endpoint: str
    cost: int
    response_time: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "agentId": self.agent_id,
            "endpoint": self.endpoint,
            "cost": self.cost,
            "responseTime": self.response_time,
        }


@dataclass(frozen=True)
class AgentFailure:
    """An agent call that could not complete after retries."""

    agent_id: str
    endpoint: str
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {"agentId": self.agent_id, "endpoint": self.endpoint, "error": self.error}


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of a single-task execution."""

    id: str
    task: str
    status: ExecutionStatus
    result: dict[str, Any]
    agents_used: list[AgentUsage]
    total_cost: int
    platform_fee: int
    duration: int
    failed_agents: list[AgentFailure] = field(default_factory=list)
    uncovered_capabilities: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "task": self.task,
            "status": str(self.status),
            "result": self.result,
            "agentsUsed": [usage.to_dict() for usage in self.agents_used],
            "failedAgents": [failure.to_dict() for failure in self.failed_agents],
            "uncoveredCapabilities": self.uncovered_capabilities,
            "totalCost": self.total_cost,
            "platformFee": self.platform_fee,
            "duration": self.duration,
        }


@dataclass(frozen=True)
class ChainPlanStep:
    """A caller-authored chain step after agent resolution.

    ``resolved`` is False when the referenced agent does not exist; such
    steps are priced at zero and skipped on execution.
    """

    step: int
    agent_id: str
    agent_name: str
    action: str
    estimated_cost: int
    input_from: str
    resolved: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step,
            "agentId": self.agent_id,
            "agentName": self.agent_name,
            "action": self.action,
            "estimatedCost": self.estimated_cost,
            "inputFrom": self.input_from,
            "resolved": self.resolved,
        }


@dataclass(frozen=True)
class ChainStepResult:
    step: int
    status: str
    output: Any = None
    cost: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "step": self.step,
            "status": self.status,
            "output": self.output,
            "cost": self.cost,
        }
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass(frozen=True)
class ChainResult:
    id: str
    status: ExecutionStatus
    chain: list[ChainPlanStep]
    results: list[ChainStepResult]
    total_cost: int
    platform_fee: int
    duration: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": str(self.status),
            "chain": [step.to_dict() for step in self.chain],
            "results": [result.to_dict() for result in self.results],
            "totalCost": self.total_cost,
            "platformFee": self.platform_fee,
            "duration": self.duration,
        }


# =============================================================================
# Endpoints
# =============================================================================


@dataclass(frozen=True)
class EndpointStats:
    total_calls: int = 0
    calls_24h: int = 0
    revenue_24h: int = 0
    avg_response_time: int = 0
    uptime: float = 100.0
    last_checked: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalCalls": self.total_calls,
            "calls24h": self.calls_24h,
            "revenue24h": self.revenue_24h,
            "avgResponseTime": self.avg_response_time,
            "uptime": self.uptime,
            "lastChecked": self.last_checked,
        }


@dataclass(frozen=True)
class Endpoint:
    """A registered x402-gated HTTP endpoint."""

    id: str
    url: str
    name: str
    owner: str
    price: int
    token: Token
    description: str = ""
    tags: tuple[str, ...] = ()
    category: str = "utility"
    open_api_spec: str | None = None
    verified: bool = False
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)
    stats: EndpointStats = field(default_factory=EndpointStats)

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "token": str(self.token),
            "tags": list(self.tags),
            "category": self.category,
            "verified": self.verified,
            "calls24h": self.stats.calls_24h,
            "uptime": self.stats.uptime,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "name": self.name,
            "description": self.description,
            "owner": self.owner,
            "price": self.price,
            "token": str(self.token),
            "tags": list(self.tags),
            "category": self.category,
            "openApiSpec": self.open_api_spec,
            "verified": self.verified,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "stats": self.stats.to_dict(),
        }


# =============================================================================
# Invoices and subscriptions
# =============================================================================


class InvoiceStatus(StrEnum):
    PENDING = "pending"
    PAID = "paid"
    EXPIRED = "expired"


@dataclass(frozen=True)
class Invoice:
    """A one-off payment request settled by an on-chain transfer."""

    id: str
    amount: int
    token: Token
    recipient: str
    memo: str
    expires_at: str
    status: InvoiceStatus = InvoiceStatus.PENDING
    tx_id: str | None = None
    created_at: str = field(default_factory=utc_now_iso)

    def is_expired(self, now: datetime) -> bool:
        return self.status == InvoiceStatus.PENDING and datetime.fromisoformat(self.expires_at) <= now

    def status_at(self, now: datetime) -> InvoiceStatus:
        return InvoiceStatus.EXPIRED if self.is_expired(now) else self.status

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "amount": self.amount,
            "token": str(self.token),
            "recipient": self.recipient,
            "memo": self.memo,
            "expiresAt": self.expires_at,
        }


@dataclass(frozen=True)
class SubscriptionPlan:
    """Monthly call allowance. ``calls`` of -1 means unlimited."""

    name: str
    calls: int
    price: int
    period: str = "month"

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "calls": self.calls, "price": self.price, "period": self.period}


@dataclass(frozen=True)
class Subscription:
    id: str
    subscriber: str
    endpoint_id: str
    plan: str
    token: Token
    calls_remaining: int
    starts_at: str
    expires_at: str
    calls_used: int = 0
    status: str = "active"
    tx_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "subscriber": self.subscriber,
            "endpointId": self.endpoint_id,
            "plan": self.plan,
            "token": str(self.token),
            "callsRemaining": self.calls_remaining,
            "callsUsed": self.calls_used,
            "startsAt": self.starts_at,
            "expiresAt": self.expires_at,
            "status": self.status,
            "txId": self.tx_id,
        }


# =============================================================================
# Analytics
# =============================================================================


@dataclass(frozen=True)
class CallRecord:
    """One call a provider reported against its endpoint.

    ``paid`` is in the smallest unit of ``token``; zero for unpaid calls.
    """

    endpoint_id: str
    caller: str
    response_time: int
    paid: int
    token: Token
    called_at: datetime = field(default_factory=lambda: datetime.now(UTC))


# =============================================================================
# Inbound payloads
# =============================================================================


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PricingPayload(CamelModel):
    model: PricingModel = PricingModel.PER_CALL
    base_price: int = Field(ge=0)
    token: Token


class AgentRegistrationPayload(CamelModel):
    """Agent registration body.

    Required fields are optional here so that the catalog reports every
    missing field in a single validation error.
    """

    name: str | None = None
    description: str = ""
    capabilities: list[str] | None = None
    endpoints: list[str] = Field(default_factory=list)
    owner: str | None = None
    pricing: PricingPayload | None = None


class RecommendRequest(CamelModel):
    task: str | None = None
    budget: int | None = Field(default=None, ge=0)
    token: Token | None = None
    capabilities: list[str] | None = None


class ExecutionRequest(CamelModel):
    """Single-task execution request. ``timeout`` is in milliseconds."""

    task: str | None = None
    budget: int | None = Field(default=None, ge=0)
    token: Token | None = None
    preferred_agents: list[str] | None = None
    timeout: int | None = Field(default=None, gt=0)


class ChainStepPayload(CamelModel):
    agent_id: str
    action: str = ""
    input_from: str | None = None


class ChainRequest(CamelModel):
    steps: list[ChainStepPayload] | None = None
    budget: int | None = Field(default=None, ge=0)
    token: Token | None = None


class EndpointRegistrationPayload(CamelModel):
    url: str | None = None
    name: str | None = None
    description: str = ""
    owner: str | None = None
    price: int | None = Field(default=None, ge=0)
    token: Token | None = None
    tags: list[str] = Field(default_factory=list)
    category: str = "utility"
    open_api_spec: str | None = None


class EndpointUpdatePayload(CamelModel):
    name: str | None = None
    description: str | None = None
    price: int | None = Field(default=None, ge=0)
    tags: list[str] | None = None
    category: str | None = None


class PaymentVerifyRequest(CamelModel):
    """Transaction lookup, checked against an invoice or against explicit expectations."""

    tx_id: str | None = None
    invoice_id: str | None = None
    expected_amount: int | None = Field(default=None, ge=0)
    recipient: str | None = None
    memo: str | None = None


class InvoiceRequest(CamelModel):
    """``expires_in`` is in seconds."""

    amount: int | None = Field(default=None, gt=0)
    token: Token | None = None
    recipient: str | None = None
    memo: str | None = None
    expires_in: int | None = Field(default=None, gt=0)


class SubscribeRequest(CamelModel):
    subscriber: str | None = None
    endpoint_id: str | None = None
    plan: str | None = None
    token: Token | None = None


class RecordCallRequest(CamelModel):
    endpoint_id: str | None = None
    caller: str | None = None
    response_time: int = Field(default=0, ge=0)
    paid: int = Field(default=0, ge=0)
    token: Token | None = None


class EndpointTestRequest(CamelModel):
    url: str | None = None
    method: str = "GET"
