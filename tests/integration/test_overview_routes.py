"""Integration tests for the service overview and platform stats."""

from fastapi.testclient import TestClient

from x402_registry.registry.models import Endpoint, EndpointStats, Token


def test_index(client: TestClient):
    data = client.get("/").json()

    assert data["name"] == "x402 Registry"
    assert data["tokens"] == ["STX", "sBTC", "USDh"]
    assert "POST /agents/execute" in data["endpoints"]
    assert data["network"] == "stacks-mainnet"


def test_stats_empty(client: TestClient):
    data = client.get("/stats").json()

    assert data == {
        "totalEndpoints": 0,
        "totalAgents": 0,
        "totalCapabilities": 0,
        "totalCalls24h": 0,
        "topCategories": [],
        "featuredEndpoints": [],
    }


async def test_stats_aggregates(client: TestClient, endpoint_repository, register_agent):
    register_agent("Summarizer", ["summarize"], 100)
    register_agent("Reader", ["blockchain-query", "summarize"], 300)
    for i, calls in enumerate((5, 40, 12, 3)):
        await endpoint_repository.insert_endpoint(
            Endpoint(
                id=f"ep{i}",
                url=f"https://ep{i}.example",
                name=f"Endpoint {i}",
                owner="SPOWNER",
                price=100,
                token=Token.STX,
                category="finance" if i % 2 else "data",
                stats=EndpointStats(calls_24h=calls),
            )
        )

    data = client.get("/stats").json()

    assert data["totalEndpoints"] == 4
    assert data["totalAgents"] == 2
    assert data["totalCapabilities"] == 2
    assert data["totalCalls24h"] == 60
    assert data["topCategories"] == ["data", "finance"]
    assert [e["id"] for e in data["featuredEndpoints"]] == ["ep1", "ep2", "ep0"]


async def test_stats_counts_calls_beyond_trending(client: TestClient, endpoint_repository):
    for i in range(12):
        await endpoint_repository.insert_endpoint(
            Endpoint(
                id=f"ep{i}",
                url=f"https://ep{i}.example",
                name=f"Endpoint {i}",
                owner="SPOWNER",
                price=100,
                token=Token.STX,
                stats=EndpointStats(calls_24h=10),
            )
        )

    data = client.get("/stats").json()

    assert data["totalEndpoints"] == 12
    assert data["totalCalls24h"] == 120
