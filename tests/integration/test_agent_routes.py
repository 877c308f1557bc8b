"""Integration tests for the /agents endpoints.

Covers registration, discovery, recommendation and the payment-gated
execute and chain flows.
"""

from fastapi.testclient import TestClient

from x402_registry.registry.payments import REGISTRY_WALLET


class TestRegisterAgent:
    def test_register_and_get(self, client: TestClient, register_agent):
        agent_id = register_agent("Summarizer", ["summarize"], 500)

        response = client.get(f"/agents/{agent_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Summarizer"
        assert data["capabilities"] == ["summarize"]
        assert data["pricing"] == {"model": "per-call", "basePrice": 500, "token": "STX"}
        assert data["owner"] == "SPOWNER"

    def test_register_response(self, client: TestClient):
        response = client.post(
            "/agents/register",
            json={
                "name": "Translator",
                "capabilities": ["translate"],
                "owner": "SPOWNER",
                "pricing": {"basePrice": 200, "token": "sBTC"},
            },
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["agent"]["id"].startswith("agent_")
        assert body["agent"]["capabilities"] == ["translate"]

    def test_missing_fields(self, client: TestClient):
        response = client.post("/agents/register", json={"name": "Nameless"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Required: name, capabilities, owner, pricing"
        assert body["category"] == "validation_error"
        assert body["fields"] == ["capabilities", "owner", "pricing"]

    def test_malformed_pricing(self, client: TestClient):
        response = client.post(
            "/agents/register",
            json={
                "name": "Bad",
                "capabilities": ["summarize"],
                "owner": "SPOWNER",
                "pricing": {"basePrice": -5, "token": "DOGE"},
            },
        )

        assert response.status_code == 400
        assert response.json()["category"] == "validation_error"

    def test_unknown_agent(self, client: TestClient):
        response = client.get("/agents/agent_missing")

        assert response.status_code == 404
        assert response.json() == {"error": "Agent not found: agent_missing", "category": "not_found"}


class TestListAgents:
    def test_empty(self, client: TestClient):
        assert client.get("/agents").json() == {"total": 0, "agents": []}

    def test_capabilities(self, client: TestClient, register_agent):
        register_agent("Summarizer", ["summarize"], 100)
        register_agent("Polyglot", ["translate", "summarize"], 300)

        data = client.get("/agents/capabilities").json()

        assert data["totalAgents"] == 2
        assert data["totalCapabilities"] == 2
        assert data["capabilities"][0] == {
            "capability": "summarize",
            "agentCount": 2,
            "description": "Condense long text into key points",
        }
        assert {category["name"] for category in data["categories"]} >= {"ai", "blockchain"}


class TestRecommend:
    def test_full_match(self, client: TestClient, register_agent):
        agent_id = register_agent("A", ["summarize"], 500)

        response = client.post("/agents/recommend", json={"task": "please summarize this", "budget": 1000})

        assert response.status_code == 200
        data = response.json()
        assert data["inferredCapabilities"] == ["summarize"]
        assert len(data["recommendations"]) == 1
        assert data["recommendations"][0]["id"] == agent_id
        assert data["recommendations"][0]["matchScore"] == 100
        assert data["executionPlan"]["steps"][0]["estimatedTime"] == 500
        assert data["estimatedCost"] == 500

    def test_explicit_capabilities_override_inference(self, client: TestClient, register_agent):
        register_agent("Reader", ["blockchain-query"], 100)

        data = client.post(
            "/agents/recommend", json={"task": "please summarize this", "capabilities": ["blockchain-query"]}
        ).json()

        assert data["inferredCapabilities"] == ["blockchain-query"]
        assert [r["name"] for r in data["recommendations"]] == ["Reader"]

    def test_budget_filter(self, client: TestClient, register_agent):
        register_agent("Cheap", ["summarize"], 100)
        register_agent("Pricey", ["summarize"], 5000)

        data = client.post("/agents/recommend", json={"task": "summarize", "budget": 1000}).json()

        assert [r["name"] for r in data["recommendations"]] == ["Cheap"]

    def test_plan_is_capped(self, client: TestClient, register_agent):
        for i in range(12):
            register_agent(f"S{i}", ["summarize"], 10)

        data = client.post("/agents/recommend", json={"task": "summarize"}).json()

        assert len(data["recommendations"]) == 10
        assert len(data["executionPlan"]["steps"]) == 5
        assert data["estimatedCost"] == 50

    def test_no_match_is_empty(self, client: TestClient):
        data = client.post("/agents/recommend", json={"task": "hello"}).json()

        assert data["inferredCapabilities"] == ["general"]
        assert data["recommendations"] == []
        assert data["executionPlan"] == {"steps": [], "totalCost": 0, "estimatedTime": 0}

    def test_task_required(self, client: TestClient):
        response = client.post("/agents/recommend", json={"budget": 100})

        assert response.status_code == 400
        assert response.json()["error"] == "Task description required"


class TestExecute:
    def test_payment_required(self, client: TestClient, register_agent):
        register_agent("A", ["summarize"], 50)

        response = client.post("/agents/execute", json={"task": "summarize", "budget": 100, "token": "STX"})

        assert response.status_code == 402
        body = response.json()
        assert body["error"] == "Payment Required"
        assert body["payment"]["amount"] == 110
        assert body["payment"]["recipient"] == REGISTRY_WALLET
        assert body["estimatedAgents"] == 1

    def test_missing_fields(self, client: TestClient):
        response = client.post("/agents/execute", json={"task": "summarize"})

        assert response.status_code == 400
        assert response.json()["fields"] == ["budget", "token"]

    def test_negative_budget_rejected(self, client: TestClient):
        response = client.post("/agents/execute", json={"task": "summarize", "budget": -1, "token": "STX"})

        assert response.status_code == 400
        assert response.json()["fields"] == ["budget"]

    def test_paid_execution(self, client: TestClient, register_agent):
        agent_id = register_agent("A", ["summarize"], 50)

        response = client.post(
            "/agents/execute",
            json={"task": "summarize", "budget": 100, "token": "STX"},
            headers={"X-Payment-Proof": "0xpaid"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["agentsUsed"][0]["agentId"] == agent_id
        assert data["agentsUsed"][0]["endpoint"] == "internal"
        assert data["totalCost"] == 50
        assert data["platformFee"] == 5
        assert data["result"]["outputs"] == [{"agentId": agent_id, "output": "Result from A"}]

    def test_paid_execution_without_agents(self, client: TestClient):
        response = client.post(
            "/agents/execute",
            json={"task": "summarize", "budget": 100, "token": "STX"},
            headers={"X-Payment-Proof": "0xpaid"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "failed"


class TestChain:
    def test_payment_required(self, client: TestClient, register_agent):
        first = register_agent("Reader", ["blockchain-query"], 300)
        second = register_agent("Scraper", ["web-scrape"], 700)

        response = client.post(
            "/agents/chain",
            json={"steps": [{"agentId": first, "action": "read"}, {"agentId": second, "action": "scrape"}]},
        )

        assert response.status_code == 402
        body = response.json()
        assert body["payment"]["amount"] == 1100
        assert body["payment"]["token"] == "sBTC"
        assert body["totalSteps"] == 2
        assert body["chain"][1]["inputFrom"] == "step1"

    def test_paid_chain(self, client: TestClient, register_agent):
        first = register_agent("Reader", ["blockchain-query"], 300)
        second = register_agent("Scraper", ["web-scrape"], 700)

        response = client.post(
            "/agents/chain",
            json={"steps": [{"agentId": first, "action": "read"}, {"agentId": second, "action": "scrape"}]},
            headers={"X-Payment-Proof": "0xpaid"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["totalCost"] == 1000
        assert data["platformFee"] == 100
        assert [r["output"] for r in data["results"]] == ["Result from Reader", "Result from Scraper"]

    def test_steps_required(self, client: TestClient):
        response = client.post("/agents/chain", json={"steps": []})

        assert response.status_code == 400
        assert response.json()["error"] == "Steps array required"


class TestAgentOpenApi:
    def test_document(self, client: TestClient, register_agent):
        agent_id = register_agent("Summarizer", ["summarize"], 500)

        doc = client.get(f"/agents/{agent_id}/openapi").json()

        assert doc["openapi"] == "3.0.0"
        assert doc["servers"] == [{"url": "https://registry.test/agents"}]
        assert f"/{agent_id}/execute" in doc["paths"]
        assert doc["x-payment"] == {"required": True, "token": "STX", "amount": 500}

    def test_unknown(self, client: TestClient):
        assert client.get("/agents/agent_missing/openapi").status_code == 404
