"""Integration tests for call recording, owner analytics and the compliance check."""

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

from x402_registry.registry.models import Endpoint, Token

OWNER = "SPOWNER"
OWNER_HEADERS = {"X-Owner-Address": OWNER}


@pytest.fixture
async def endpoints(endpoint_repository) -> None:
    for endpoint_id, owner in (("weather", OWNER), ("foreign", "SPOTHER")):
        await endpoint_repository.insert_endpoint(
            Endpoint(
                id=endpoint_id,
                url=f"https://{endpoint_id}.test",
                name=endpoint_id,
                owner=owner,
                price=10,
                token=Token.SBTC,
            )
        )


def _record(client: TestClient, endpoint_id: str, caller: str, paid: int) -> None:
    response = client.post(
        "/analytics/record-call",
        json={"endpointId": endpoint_id, "caller": caller, "responseTime": 120, "paid": paid},
    )
    assert response.status_code == 201, response.text


def test_record_call_missing_fields(client: TestClient):
    response = client.post("/analytics/record-call", json={"caller": "SPCALLER"})

    assert response.status_code == 400
    assert response.json()["error"] == "Required: endpointId, caller"


def test_record_call_unknown_endpoint(client: TestClient):
    response = client.post("/analytics/record-call", json={"endpointId": "ghost", "caller": "SPCALLER"})
    assert response.status_code == 404


@pytest.mark.parametrize("path", ["/analytics/my-endpoints", "/analytics/revenue", "/analytics/callers"])
def test_owner_header_required(client: TestClient, path: str):
    response = client.get(path)

    assert response.status_code == 401
    assert response.json() == {"error": "X-Owner-Address header required", "category": "owner_required"}


def test_my_endpoints(client: TestClient, endpoints):
    _record(client, "weather", "SPA", 10)
    _record(client, "weather", "SPB", 20)
    _record(client, "foreign", "SPA", 500)

    data = client.get("/analytics/my-endpoints", headers=OWNER_HEADERS).json()

    assert [row["endpointId"] for row in data["endpoints"]] == ["weather"]
    assert data["summary"]["totalCalls"] == 2
    assert data["summary"]["totalRevenue"] == 30


def test_revenue(client: TestClient, endpoints):
    _record(client, "weather", "SPA", 10)

    data = client.get("/analytics/revenue", params={"period": "24h"}, headers=OWNER_HEADERS).json()

    assert data["period"] == "24h"
    assert data["totals"]["sBTC"] == 10
    assert data["dailyRevenue"][0]["sBTC"] == 10


def test_callers(client: TestClient, endpoints):
    _record(client, "weather", "SPA", 10)
    _record(client, "weather", "SPA", 10)

    data = client.get("/analytics/callers", params={"endpointId": "weather"}, headers=OWNER_HEADERS).json()

    assert data["endpoint"] == "weather"
    assert data["uniqueCallers"] == 1
    assert data["topCallers"][0]["calls"] == 2


def test_callers_of_foreign_endpoint(client: TestClient, endpoints):
    response = client.get("/analytics/callers", params={"endpointId": "foreign"}, headers=OWNER_HEADERS)
    assert response.status_code == 403


@respx.mock
def test_compliance_check(client: TestClient):
    respx.get("https://provider.test/api").mock(
        return_value=httpx.Response(402, json={"amount": 10, "payTo": "SPPROVIDER", "token": "STX"})
    )

    response = client.post("/dev/test-endpoint", json={"url": "https://provider.test/api"})

    assert response.status_code == 200
    data = response.json()
    assert data["compliant"] is True
    assert data["fullyCompliant"] is False
    assert len(data["tests"]) == 6


def test_compliance_check_requires_url(client: TestClient):
    response = client.post("/dev/test-endpoint", json={})

    assert response.status_code == 400
    assert response.json()["error"] == "URL required"
