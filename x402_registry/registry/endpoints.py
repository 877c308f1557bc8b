"""Registry of x402-gated HTTP endpoints.

Providers register a URL with a price and token. The URL is probed once at
registration: it counts as verified when it answers 402 with payment
requirements, or 200.
"""

import dataclasses
import logging
import secrets
import string
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

import httpx

from x402_registry.registry.errors import NotAuthorizedError, NotFoundError, ValidationError
from x402_registry.registry.models import (
    Endpoint,
    EndpointRegistrationPayload,
    EndpointStats,
    EndpointUpdatePayload,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "utility"
DEFAULT_SEARCH_LIMIT = 20
DISCOVER_LIMIT = 10
DISCOVER_PER_CATEGORY = 5
UPDATABLE_FIELDS = ("name", "description", "price", "tags", "category")
PAYMENT_REQUIREMENT_KEYS = ("maxAmountRequired", "amount", "payTo", "payment")

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_endpoint_id() -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(13))


class EndpointOrder(StrEnum):
    TRENDING = "trending"
    NEWEST = "newest"


@dataclass(frozen=True)
class EndpointQuery:
    category: str | None = None
    token: str | None = None
    q: str | None = None
    limit: int = DEFAULT_SEARCH_LIMIT
    offset: int = 0


class EndpointRepository(Protocol):
    """Persistence contract for endpoint records."""

    async def insert_endpoint(self, endpoint: Endpoint) -> None: ...

    async def get_endpoint(self, endpoint_id: str) -> Endpoint | None: ...

    async def search_endpoints(self, query: EndpointQuery) -> tuple[list[Endpoint], int]: ...

    async def list_endpoints(
        self, order: EndpointOrder, limit: int, category: str | None = None
    ) -> list[Endpoint]: ...

    async def list_categories(self) -> list[str]: ...

    async def count_endpoints(self) -> int: ...

    async def total_calls_24h(self) -> int: ...

    async def owned_endpoint_ids(self, owner: str) -> list[str]: ...

    async def update_endpoint(self, endpoint_id: str, changes: dict[str, Any]) -> Endpoint | None: ...

    async def delete_endpoint(self, endpoint_id: str) -> bool: ...


def _matches(endpoint: Endpoint, query: EndpointQuery) -> bool:
    if query.category and endpoint.category != query.category:
        return False
    if query.token and str(endpoint.token) != query.token:
        return False
    if query.q:
        needle = query.q.lower()
        return needle in endpoint.name.lower() or needle in endpoint.description.lower()
    return True


def _sort_key(order: EndpointOrder):
    if order == EndpointOrder.NEWEST:
        return lambda endpoint: endpoint.created_at
    return lambda endpoint: endpoint.stats.calls_24h


class InMemoryEndpointRepository:
    """Process-local endpoint repository, used when no database is configured."""

    def __init__(self) -> None:
        self._endpoints: dict[str, Endpoint] = {}

    async def insert_endpoint(self, endpoint: Endpoint) -> None:
        self._endpoints[endpoint.id] = endpoint

    async def get_endpoint(self, endpoint_id: str) -> Endpoint | None:
        return self._endpoints.get(endpoint_id)

    async def search_endpoints(self, query: EndpointQuery) -> tuple[list[Endpoint], int]:
        matches = [e for e in self._endpoints.values() if _matches(e, query)]
        matches.sort(key=_sort_key(EndpointOrder.TRENDING), reverse=True)
        return matches[query.offset : query.offset + query.limit], len(matches)

    async def list_endpoints(
        self, order: EndpointOrder, limit: int, category: str | None = None
    ) -> list[Endpoint]:
        endpoints = [e for e in self._endpoints.values() if category is None or e.category == category]
        endpoints.sort(key=_sort_key(order), reverse=True)
        return endpoints[:limit]

    async def list_categories(self) -> list[str]:
        return sorted({e.category for e in self._endpoints.values()})

    async def count_endpoints(self) -> int:
        return len(self._endpoints)

    async def total_calls_24h(self) -> int:
        return sum(e.stats.calls_24h for e in self._endpoints.values())

    async def owned_endpoint_ids(self, owner: str) -> list[str]:
        return [e.id for e in self._endpoints.values() if e.owner == owner]

    async def update_endpoint(self, endpoint_id: str, changes: dict[str, Any]) -> Endpoint | None:
        endpoint = self._endpoints.get(endpoint_id)
        if endpoint is None:
            return None
        updated = dataclasses.replace(endpoint, **changes)
        self._endpoints[endpoint_id] = updated
        return updated

    async def delete_endpoint(self, endpoint_id: str) -> bool:
        return self._endpoints.pop(endpoint_id, None) is not None


# =============================================================================
# Compliance probe
# =============================================================================


@dataclass(frozen=True)
class ProbeResult:
    valid: bool
    error: str | None = None
    response_time: int = 0


class X402Prober:
    """Checks that a URL speaks the 402 payment protocol."""

    def __init__(self, client: httpx.AsyncClient, timeout_seconds: float = 5.0):
        self._client = client
        self._timeout = timeout_seconds

    async def probe(self, url: str) -> ProbeResult:
        started = time.monotonic()
        try:
            response = await self._client.get(
                url, headers={"Accept": "application/json"}, timeout=self._timeout
            )
        except httpx.HTTPError as e:
            return ProbeResult(valid=False, error=f"Failed to reach endpoint: {e}")
        response_time = int((time.monotonic() - started) * 1000)

        if response.status_code == 402:
            try:
                body = response.json()
            except ValueError:
                body = {}
            if isinstance(body, dict) and any(body.get(key) for key in PAYMENT_REQUIREMENT_KEYS):
                return ProbeResult(valid=True, response_time=response_time)
            return ProbeResult(
                valid=False, error="402 response missing payment requirements", response_time=response_time
            )

        if response.status_code == 200:
            return ProbeResult(valid=True, response_time=response_time)
        return ProbeResult(
            valid=False,
            error=f"Expected 402 status, got {response.status_code}",
            response_time=response_time,
        )


# =============================================================================
# Service
# =============================================================================


class EndpointService:
    """Registration, discovery and owner-gated maintenance of endpoints."""

    def __init__(self, repository: EndpointRepository, prober: X402Prober, public_base_url: str = ""):
        self._repository = repository
        self._prober = prober
        self._public_base_url = public_base_url.rstrip("/")

    def registry_url(self, endpoint_id: str) -> str:
        return f"{self._public_base_url}/registry/{endpoint_id}"

    async def register(self, payload: EndpointRegistrationPayload) -> Endpoint:
        """Probe and store a new endpoint.

        Raises:
            ValidationError: If url, name, owner, price or token is missing
        """
        missing = [
            name
            for name, value in (
                ("url", payload.url),
                ("name", payload.name),
                ("owner", payload.owner),
                ("price", payload.price is not None),
                ("token", payload.token),
            )
            if not value
        ]
        if missing:
            raise ValidationError("Missing required fields: url, name, owner, price, token", fields=missing)
        assert payload.url and payload.name and payload.owner and payload.token
        assert payload.price is not None

        probe = await self._prober.probe(payload.url)
        if not probe.valid:
            logger.info(f"Endpoint {payload.url} failed x402 probe: {probe.error}")

        endpoint = Endpoint(
            id=generate_endpoint_id(),
            url=payload.url,
            name=payload.name,
            description=payload.description,
            owner=payload.owner,
            price=payload.price,
            token=payload.token,
            tags=tuple(payload.tags),
            category=payload.category or DEFAULT_CATEGORY,
            open_api_spec=payload.open_api_spec,
            verified=probe.valid,
            stats=EndpointStats(avg_response_time=probe.response_time),
        )
        await self._repository.insert_endpoint(endpoint)
        logger.info(f"Endpoint '{endpoint.id}' registered (verified={endpoint.verified})")
        return endpoint

    async def search(self, query: EndpointQuery) -> dict[str, Any]:
        endpoints, total = await self._repository.search_endpoints(query)
        return {
            "results": [endpoint.summary() for endpoint in endpoints],
            "total": total,
            "limit": query.limit,
            "offset": query.offset,
            "hasMore": query.offset + query.limit < total,
        }

    async def discover(self) -> dict[str, Any]:
        trending = await self._repository.list_endpoints(EndpointOrder.TRENDING, DISCOVER_LIMIT)
        newest = await self._repository.list_endpoints(EndpointOrder.NEWEST, DISCOVER_LIMIT)
        categories = await self._repository.list_categories()
        by_category = {}
        for category in categories:
            in_category = await self._repository.list_endpoints(
                EndpointOrder.TRENDING, DISCOVER_PER_CATEGORY, category=category
            )
            by_category[category] = [endpoint.summary() for endpoint in in_category]

        return {
            "trending": [endpoint.summary() for endpoint in trending],
            "new": [endpoint.summary() for endpoint in newest],
            "byCategory": by_category,
            "totalEndpoints": len(trending),
            "categories": categories,
        }

    async def get(self, endpoint_id: str) -> Endpoint:
        endpoint = await self._repository.get_endpoint(endpoint_id)
        if endpoint is None:
            raise NotFoundError("Endpoint", endpoint_id)
        return endpoint

    async def stats(self, endpoint_id: str) -> dict[str, Any]:
        endpoint = await self.get(endpoint_id)
        return {
            "endpointId": endpoint.id,
            "name": endpoint.name,
            "stats": endpoint.stats.to_dict(),
            "pricing": {"price": endpoint.price, "token": str(endpoint.token)},
        }

    async def count(self) -> int:
        return await self._repository.count_endpoints()

    async def total_calls_24h(self) -> int:
        """Calls in the last 24h across every registered endpoint."""
        return await self._repository.total_calls_24h()

    async def owned_by(self, owner: str) -> list[str]:
        return await self._repository.owned_endpoint_ids(owner)

    async def update(self, endpoint_id: str, owner: str | None, payload: EndpointUpdatePayload) -> Endpoint:
        """Apply owner-requested changes to name, description, price, tags or category.

        Raises:
            NotFoundError: If the endpoint does not exist
            NotAuthorizedError: If ``owner`` is not the endpoint's owner
        """
        await self._authorize(endpoint_id, owner)
        changes: dict[str, Any] = payload.model_dump(include=set(UPDATABLE_FIELDS), exclude_unset=True)
        changes = {key: value for key, value in changes.items() if value is not None}
        if "tags" in changes:
            changes["tags"] = tuple(changes["tags"])
        changes["updated_at"] = utc_now_iso()

        updated = await self._repository.update_endpoint(endpoint_id, changes)
        if updated is None:
            raise NotFoundError("Endpoint", endpoint_id)
        logger.info(f"Endpoint '{endpoint_id}' updated: {sorted(changes)}")
        return updated

    async def delete(self, endpoint_id: str, owner: str | None) -> None:
        await self._authorize(endpoint_id, owner)
        await self._repository.delete_endpoint(endpoint_id)
        logger.info(f"Endpoint '{endpoint_id}' removed")

    async def _authorize(self, endpoint_id: str, owner: str | None) -> Endpoint:
        endpoint = await self.get(endpoint_id)
        if not owner or endpoint.owner != owner:
            raise NotAuthorizedError()
        return endpoint
