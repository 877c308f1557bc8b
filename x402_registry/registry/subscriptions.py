"""Paid monthly subscriptions to registered endpoints.

Subscribing goes through the same 402 gate as executions: without a proof
the caller gets a demand for the plan price, with a verified proof the
subscription is created under the id named in the paid memo.
"""

import logging
import secrets
import string
import time
from datetime import UTC, datetime, timedelta
from types import MappingProxyType
from typing import Any, Protocol

from x402_registry.platform.observability.metrics import record_payment_demand
from x402_registry.registry.endpoints import EndpointService
from x402_registry.registry.errors import NotFoundError, PaymentRequiredError, ValidationError
from x402_registry.registry.models import SubscribeRequest, Subscription, SubscriptionPlan, Token
from x402_registry.registry.payments import (
    REGISTRY_WALLET,
    PaymentDemand,
    PaymentVerifier,
    memo_reference,
    require_payment,
)

logger = logging.getLogger(__name__)

SUBSCRIBE_MEMO_PREFIX = "subscribe:"
SUBSCRIPTION_DAYS = 30

SUBSCRIPTION_PLANS = MappingProxyType(
    {
        "basic": SubscriptionPlan(name="basic", calls=100, price=1000),
        "pro": SubscriptionPlan(name="pro", calls=1000, price=8000),
        "unlimited": SubscriptionPlan(name="unlimited", calls=-1, price=50000),
    }
)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_subscription_id() -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(6))
    return f"sub_{int(time.time() * 1000)}_{suffix}"


class SubscriptionRepository(Protocol):
    async def insert_subscription(self, subscription: Subscription) -> None: ...

    async def get_subscription(self, subscription_id: str) -> Subscription | None: ...


class InMemorySubscriptionRepository:
    def __init__(self) -> None:
        self._subscriptions: dict[str, Subscription] = {}

    async def insert_subscription(self, subscription: Subscription) -> None:
        self._subscriptions[subscription.id] = subscription

    async def get_subscription(self, subscription_id: str) -> Subscription | None:
        return self._subscriptions.get(subscription_id)


class SubscriptionService:
    def __init__(
        self,
        repository: SubscriptionRepository,
        verifier: PaymentVerifier,
        endpoints: EndpointService,
        recipient: str = REGISTRY_WALLET,
    ):
        self._repository = repository
        self._verifier = verifier
        self._endpoints = endpoints
        self._recipient = recipient

    async def subscribe(self, payload: SubscribeRequest, payment_proof: str | None = None) -> Subscription:
        """Subscribe to an endpoint once the plan is paid for.

        Raises:
            ValidationError: If a field is missing or the plan is unknown
            NotFoundError: If the endpoint is not registered
            PaymentRequiredError: If no proof is attached or the proof is rejected
        """
        missing = [
            name
            for name, value in (
                ("subscriber", payload.subscriber),
                ("endpointId", payload.endpoint_id),
                ("plan", payload.plan),
            )
            if not value
        ]
        if missing:
            raise ValidationError("Required: subscriber, endpointId, plan", fields=missing)
        assert payload.subscriber and payload.endpoint_id and payload.plan

        plan = SUBSCRIPTION_PLANS.get(payload.plan)
        if plan is None:
            raise ValidationError(f"Invalid plan. Options: {', '.join(SUBSCRIPTION_PLANS)}", fields=["plan"])
        await self._endpoints.get(payload.endpoint_id)

        token = payload.token or Token.SBTC

        def demand() -> PaymentDemand:
            return PaymentDemand(
                amount=plan.price,
                token=str(token),
                recipient=self._recipient,
                memo=f"{SUBSCRIBE_MEMO_PREFIX}{generate_subscription_id()}",
            )

        def demand_body() -> dict[str, Any]:
            return {"payment": demand().to_dict(), "plan": plan.to_dict()}

        if not payment_proof:
            record_payment_demand("subscribe", str(token))
            raise PaymentRequiredError(demand_body())

        verification = await require_payment(
            self._verifier, payment_proof, demand(), SUBSCRIBE_MEMO_PREFIX, demand_body
        )

        subscription_id = memo_reference(verification, SUBSCRIBE_MEMO_PREFIX)
        if subscription_id is None or await self._repository.get_subscription(subscription_id):
            subscription_id = generate_subscription_id()

        starts_at = datetime.now(UTC)
        subscription = Subscription(
            id=subscription_id,
            subscriber=payload.subscriber,
            endpoint_id=payload.endpoint_id,
            plan=plan.name,
            token=token,
            calls_remaining=plan.calls,
            starts_at=starts_at.isoformat(),
            expires_at=(starts_at + timedelta(days=SUBSCRIPTION_DAYS)).isoformat(),
            tx_id=verification.facts.tx_id if verification.facts else None,
        )
        await self._repository.insert_subscription(subscription)
        logger.info(f"Subscription {subscription.id} ({plan.name}) created for {payload.endpoint_id}")
        return subscription

    async def get(self, subscription_id: str) -> Subscription:
        subscription = await self._repository.get_subscription(subscription_id)
        if subscription is None:
            raise NotFoundError("Subscription", subscription_id)
        return subscription
