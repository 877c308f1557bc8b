"""Integration tests for the /registry endpoints.

x402 probes go through the shared outbound client and are served by respx.
"""

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

OWNER = "SPENDPOINTOWNER"
PAID_URL = "https://paid.example/api"
FREE_URL = "https://free.example/api"


@pytest.fixture
def probes():
    with respx.mock(assert_all_called=False) as mock:
        mock.get(PAID_URL).mock(return_value=httpx.Response(402, json={"maxAmountRequired": "1000"}))
        mock.get(FREE_URL).mock(return_value=httpx.Response(404))
        yield mock


@pytest.fixture
def register_endpoint(client: TestClient, probes):
    def register(**overrides) -> dict:
        body = {
            "url": PAID_URL,
            "name": "Price Oracle",
            "description": "Spot prices for Stacks tokens",
            "owner": OWNER,
            "price": 1000,
            "token": "STX",
            "tags": ["prices", "oracle"],
            "category": "finance",
        } | overrides
        response = client.post("/registry/register", json=body)
        assert response.status_code == 201, response.text
        return response.json()["endpoint"]

    return register


class TestRegisterEndpoint:
    def test_compliant_endpoint_is_verified(self, register_endpoint):
        endpoint = register_endpoint()

        assert endpoint["verified"] is True
        assert endpoint["name"] == "Price Oracle"
        assert endpoint["registryUrl"] == f"https://registry.test/registry/{endpoint['id']}"
        assert len(endpoint["id"]) == 13

    def test_non_compliant_endpoint_is_stored_unverified(self, client: TestClient, register_endpoint):
        endpoint = register_endpoint(url=FREE_URL, name="Free Thing")

        assert endpoint["verified"] is False
        assert client.get(f"/registry/{endpoint['id']}").status_code == 200

    def test_missing_fields(self, client: TestClient):
        response = client.post("/registry/register", json={"url": PAID_URL, "name": "Half"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Missing required fields: url, name, owner, price, token"
        assert body["fields"] == ["owner", "price", "token"]


class TestSearch:
    def test_filters(self, client: TestClient, register_endpoint):
        register_endpoint()
        register_endpoint(name="Weather Feed", description="Forecasts", category="data", token="sBTC")

        finance = client.get("/registry/search", params={"category": "finance"}).json()
        sbtc = client.get("/registry/search", params={"token": "sBTC"}).json()
        text = client.get("/registry/search", params={"q": "FORECAST"}).json()

        assert [r["name"] for r in finance["results"]] == ["Price Oracle"]
        assert [r["name"] for r in sbtc["results"]] == ["Weather Feed"]
        assert [r["name"] for r in text["results"]] == ["Weather Feed"]

    def test_pagination(self, client: TestClient, register_endpoint):
        for i in range(3):
            register_endpoint(name=f"Oracle {i}")

        page = client.get("/registry/search", params={"limit": 2}).json()

        assert page["total"] == 3
        assert page["limit"] == 2
        assert page["offset"] == 0
        assert len(page["results"]) == 2
        assert page["hasMore"] is True

        last = client.get("/registry/search", params={"limit": 2, "offset": 2}).json()
        assert len(last["results"]) == 1
        assert last["hasMore"] is False

    @pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 101}, {"offset": -1}])
    def test_bounds(self, client: TestClient, params):
        response = client.get("/registry/search", params=params)

        assert response.status_code == 400
        assert response.json()["category"] == "validation_error"


class TestDiscover:
    def test_groups_by_category(self, client: TestClient, register_endpoint):
        register_endpoint()
        register_endpoint(name="Weather Feed", category="data")

        data = client.get("/registry/discover").json()

        assert data["categories"] == ["data", "finance"]
        assert set(data["byCategory"]) == {"data", "finance"}
        assert data["totalEndpoints"] == 2
        assert len(data["new"]) == 2

    def test_empty(self, client: TestClient):
        data = client.get("/registry/discover").json()

        assert data == {"trending": [], "new": [], "byCategory": {}, "totalEndpoints": 0, "categories": []}


class TestEndpointDetail:
    def test_get(self, client: TestClient, register_endpoint):
        endpoint_id = register_endpoint()["id"]

        data = client.get(f"/registry/{endpoint_id}").json()

        assert data["owner"] == OWNER
        assert data["tags"] == ["prices", "oracle"]
        assert data["stats"]["totalCalls"] == 0

    def test_stats(self, client: TestClient, register_endpoint):
        endpoint_id = register_endpoint()["id"]

        data = client.get(f"/registry/{endpoint_id}/stats").json()

        assert data["endpointId"] == endpoint_id
        assert data["pricing"] == {"price": 1000, "token": "STX"}
        assert data["stats"]["uptime"] == 100.0

    def test_unknown(self, client: TestClient):
        assert client.get("/registry/nope").status_code == 404
        assert client.get("/registry/nope/stats").status_code == 404


class TestOwnerMaintenance:
    def test_update_by_owner(self, client: TestClient, register_endpoint):
        endpoint_id = register_endpoint()["id"]

        response = client.put(
            f"/registry/{endpoint_id}",
            json={"price": 2500, "tags": ["prices"]},
            headers={"X-Owner-Address": OWNER},
        )

        assert response.status_code == 200
        assert response.json()["endpoint"]["price"] == 2500
        detail = client.get(f"/registry/{endpoint_id}").json()
        assert detail["tags"] == ["prices"]
        assert detail["name"] == "Price Oracle"

    @pytest.mark.parametrize("headers", [{}, {"X-Owner-Address": "SPSOMEONEELSE"}])
    def test_update_by_stranger(self, client: TestClient, register_endpoint, headers):
        endpoint_id = register_endpoint()["id"]

        response = client.put(f"/registry/{endpoint_id}", json={"price": 1}, headers=headers)

        assert response.status_code == 403
        assert response.json() == {"error": "Not authorized", "category": "not_authorized"}

    def test_delete(self, client: TestClient, register_endpoint):
        endpoint_id = register_endpoint()["id"]

        refused = client.delete(f"/registry/{endpoint_id}", headers={"X-Owner-Address": "SPSOMEONEELSE"})
        removed = client.delete(f"/registry/{endpoint_id}", headers={"X-Owner-Address": OWNER})

        assert refused.status_code == 403
        assert removed.status_code == 200
        assert removed.json() == {"success": True, "message": "Endpoint removed"}
        assert client.get(f"/registry/{endpoint_id}").status_code == 404

    def test_delete_unknown(self, client: TestClient):
        response = client.delete("/registry/nope", headers={"X-Owner-Address": OWNER})

        assert response.status_code == 404
