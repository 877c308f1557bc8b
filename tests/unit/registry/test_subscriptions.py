"""Unit tests for paid endpoint subscriptions."""

import re
from datetime import datetime, timedelta

import httpx
import pytest

from x402_registry.registry.endpoints import EndpointService, InMemoryEndpointRepository, X402Prober
from x402_registry.registry.errors import NotFoundError, PaymentRequiredError, ValidationError
from x402_registry.registry.models import Endpoint, SubscribeRequest, Token
from x402_registry.registry.payments import REGISTRY_WALLET, PaymentFacts, PaymentVerification
from x402_registry.registry.subscriptions import (
    SUBSCRIPTION_DAYS,
    SUBSCRIPTION_PLANS,
    InMemorySubscriptionRepository,
    SubscriptionService,
    generate_subscription_id,
)

ENDPOINT_ID = "weather"
PROOF = "0xpaid"


class MemoVerifier:
    """Accepts every proof as a transfer carrying ``memo``."""

    def __init__(self, memo: str | None = None, verified: bool = True):
        self.memo = memo
        self.verified = verified
        self.calls: list[tuple[int, str, str | None]] = []

    async def verify_payment_proof(
        self, proof: str, expected_amount: int, token: str, memo: str | None = None
    ) -> PaymentVerification:
        self.calls.append((expected_amount, token, memo))
        if not self.verified:
            return PaymentVerification(verified=False, reason="Payment sent to wrong recipient")
        facts = PaymentFacts(
            tx_id=proof,
            status="success",
            tx_type="contract_call",
            amount=expected_amount,
            token=token,
            sender="SPSENDER",
            recipient=REGISTRY_WALLET,
            memo=self.memo,
        )
        return PaymentVerification(verified=True, facts=facts)


@pytest.fixture
async def endpoint_service():
    repository = InMemoryEndpointRepository()
    await repository.insert_endpoint(
        Endpoint(id=ENDPOINT_ID, url="https://weather.test", name="Weather", owner="SPOWNER", price=10, token=Token.STX)
    )
    async with httpx.AsyncClient() as client:
        yield EndpointService(repository, X402Prober(client))


@pytest.fixture
def repository() -> InMemorySubscriptionRepository:
    return InMemorySubscriptionRepository()


def _service(repository, endpoint_service, verifier=None) -> SubscriptionService:
    return SubscriptionService(repository, verifier or MemoVerifier(), endpoint_service)


def _request(**overrides) -> SubscribeRequest:
    fields = {"subscriber": "SPSUBSCRIBER", "endpoint_id": ENDPOINT_ID, "plan": "pro"}
    fields.update(overrides)
    return SubscribeRequest(**fields)


class TestGenerateSubscriptionId:
    def test_format(self):
        subscription_id = generate_subscription_id()

        assert re.fullmatch(r"sub_\d+_[a-z0-9]{6}", subscription_id)
        assert len(f"subscribe:{subscription_id}") <= 34


class TestPlans:
    def test_catalogue(self):
        assert {name: (plan.calls, plan.price) for name, plan in SUBSCRIPTION_PLANS.items()} == {
            "basic": (100, 1000),
            "pro": (1000, 8000),
            "unlimited": (-1, 50000),
        }


class TestSubscribe:
    async def test_demand_without_proof(self, repository, endpoint_service):
        service = _service(repository, endpoint_service)

        with pytest.raises(PaymentRequiredError) as exc_info:
            await service.subscribe(_request())

        body = exc_info.value.body
        assert body["payment"]["amount"] == 8000
        assert body["payment"]["token"] == "sBTC"
        assert body["payment"]["recipient"] == REGISTRY_WALLET
        assert body["payment"]["memo"].startswith("subscribe:sub_")
        assert body["plan"] == {"name": "pro", "calls": 1000, "price": 8000, "period": "month"}

    async def test_paid(self, repository, endpoint_service):
        verifier = MemoVerifier(memo="subscribe:sub_1700000000000_abc123")
        service = _service(repository, endpoint_service, verifier)

        subscription = await service.subscribe(_request(token=Token.USDH), PROOF)

        assert subscription.id == "sub_1700000000000_abc123"
        assert subscription.plan == "pro"
        assert subscription.calls_remaining == 1000
        assert subscription.token == Token.USDH
        assert subscription.tx_id == PROOF
        assert verifier.calls == [(8000, "USDh", "subscribe:")]
        span = datetime.fromisoformat(subscription.expires_at) - datetime.fromisoformat(subscription.starts_at)
        assert span == timedelta(days=SUBSCRIPTION_DAYS)
        assert await service.get(subscription.id) == subscription

    async def test_memo_id_already_taken(self, repository, endpoint_service):
        verifier = MemoVerifier(memo="subscribe:sub_1700000000000_abc123")
        service = _service(repository, endpoint_service, verifier)
        first = await service.subscribe(_request(), PROOF)

        second = await service.subscribe(_request(), "0xother")

        assert second.id != first.id

    async def test_rejected_proof(self, repository, endpoint_service):
        service = _service(repository, endpoint_service, MemoVerifier(verified=False))

        with pytest.raises(PaymentRequiredError) as exc_info:
            await service.subscribe(_request(plan="basic"), PROOF)

        assert exc_info.value.reason == "Payment sent to wrong recipient"
        assert exc_info.value.body["payment"]["amount"] == 1000

    async def test_missing_fields(self, repository, endpoint_service):
        service = _service(repository, endpoint_service)

        with pytest.raises(ValidationError) as exc_info:
            await service.subscribe(SubscribeRequest(plan="pro"))

        assert exc_info.value.message == "Required: subscriber, endpointId, plan"
        assert exc_info.value.fields == ["subscriber", "endpointId"]

    async def test_invalid_plan(self, repository, endpoint_service):
        service = _service(repository, endpoint_service)

        with pytest.raises(ValidationError) as exc_info:
            await service.subscribe(_request(plan="platinum"))

        assert exc_info.value.message == "Invalid plan. Options: basic, pro, unlimited"

    async def test_unknown_endpoint(self, repository, endpoint_service):
        service = _service(repository, endpoint_service)

        with pytest.raises(NotFoundError):
            await service.subscribe(_request(endpoint_id="ghost"))

    async def test_get_unknown(self, repository, endpoint_service):
        with pytest.raises(NotFoundError):
            await _service(repository, endpoint_service).get("sub_missing")
