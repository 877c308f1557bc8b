"""Integration tests for POST /payments/verify against a mocked Stacks API."""

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

from x402_registry.registry.payments import REGISTRY_WALLET

STACKS_API_URL = "https://stacks.test"
TX_ID = "0xabc123"


def stx_transfer(status: str = "success", amount: str = "1100", memo: str = "0x65786563757465") -> dict:
    return {
        "tx_id": TX_ID,
        "tx_status": status,
        "tx_type": "token_transfer",
        "sender_address": "SPSENDER",
        "block_height": 170000,
        "burn_block_time_iso": "2026-01-05T00:00:00.000Z",
        "token_transfer": {"recipient_address": REGISTRY_WALLET, "amount": amount, "memo": memo},
    }


@pytest.fixture
def stacks_api():
    with respx.mock(base_url=STACKS_API_URL, assert_all_called=False) as mock:
        yield mock


def test_tx_id_required(client: TestClient):
    response = client.post("/payments/verify", json={})

    assert response.status_code == 400
    assert response.json()["error"] == "Transaction ID required"


def test_unknown_transaction(client: TestClient, stacks_api):
    stacks_api.get(f"/extended/v1/tx/{TX_ID}").mock(return_value=httpx.Response(404))

    response = client.post("/payments/verify", json={"txId": TX_ID})

    assert response.status_code == 404
    assert response.json()["error"] == f"Transaction not found: {TX_ID}"


def test_unsuccessful_transaction(client: TestClient, stacks_api):
    stacks_api.get(f"/extended/v1/tx/{TX_ID}").mock(
        return_value=httpx.Response(200, json=stx_transfer(status="abort_by_response"))
    )

    response = client.post("/payments/verify", json={"txId": TX_ID})

    assert response.status_code == 200
    assert response.json() == {
        "verified": False,
        "status": "abort_by_response",
        "error": "Transaction not successful",
    }


def test_verified_transfer(client: TestClient, stacks_api):
    stacks_api.get(f"/extended/v1/tx/{TX_ID}").mock(return_value=httpx.Response(200, json=stx_transfer()))

    response = client.post(
        "/payments/verify",
        json={"txId": TX_ID, "expectedAmount": 1100, "recipient": REGISTRY_WALLET, "memo": "execute"},
    )

    data = response.json()
    assert data["verified"] is True
    assert "mismatches" not in data
    assert data["transaction"]["amount"] == 1100
    assert data["transaction"]["token"] == "STX"
    assert data["transaction"]["memo"] == "execute"
    assert data["transaction"]["blockHeight"] == 170000


def test_mismatches_reported(client: TestClient, stacks_api):
    stacks_api.get(f"/extended/v1/tx/{TX_ID}").mock(
        return_value=httpx.Response(200, json=stx_transfer(amount="500"))
    )

    response = client.post(
        "/payments/verify",
        json={"txId": TX_ID, "expectedAmount": 1100, "recipient": "SPELSEWHERE", "memo": "chain"},
    )

    data = response.json()
    assert data["verified"] is False
    assert data["mismatches"] == ["amount", "recipient", "memo"]


def test_stacks_api_failure(client: TestClient, stacks_api):
    stacks_api.get(f"/extended/v1/tx/{TX_ID}").mock(return_value=httpx.Response(503))

    response = client.post("/payments/verify", json={"txId": TX_ID})

    assert response.status_code == 502
    assert response.json()["category"] == "payment_verification_failed"


def _memo_hex(memo: str) -> str:
    return "0x" + memo.encode().hex()


def _create_invoice(client: TestClient, **overrides) -> dict:
    body = {"amount": 1100, "token": "STX", "recipient": REGISTRY_WALLET}
    body.update(overrides)
    response = client.post("/payments/create-invoice", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_invoice(client: TestClient):
    data = _create_invoice(client, token="sBTC")

    invoice = data["invoice"]
    assert invoice["id"].startswith("inv_")
    assert invoice["memo"] == f"invoice:{invoice['id']}"
    assert invoice["token"] == "sBTC"
    assert data["paymentInstructions"]["function"] == "transfer"
    assert data["qrData"].startswith(f"stacks:{REGISTRY_WALLET}?amount=1100&token=sBTC")


def test_create_invoice_missing_fields(client: TestClient):
    response = client.post("/payments/create-invoice", json={"amount": 10})

    assert response.status_code == 400
    assert response.json()["error"] == "Required: amount, token, recipient"


def test_invoice_settled_by_matching_transfer(client: TestClient, stacks_api):
    invoice = _create_invoice(client)["invoice"]
    stacks_api.get(f"/extended/v1/tx/{TX_ID}").mock(
        return_value=httpx.Response(200, json=stx_transfer(memo=_memo_hex(invoice["memo"])))
    )

    data = client.post("/payments/verify", json={"txId": TX_ID, "invoiceId": invoice["id"]}).json()

    assert data["verified"] is True
    assert data["invoice"] == invoice["id"]
    assert data["invoiceStatus"] == "paid"
    assert "mismatches" not in data


def test_invoice_transaction_is_not_reusable(client: TestClient, stacks_api):
    first = _create_invoice(client, memo="order-1")["invoice"]
    second = _create_invoice(client, memo="order-1")["invoice"]
    stacks_api.get(f"/extended/v1/tx/{TX_ID}").mock(
        return_value=httpx.Response(200, json=stx_transfer(memo=_memo_hex("order-1")))
    )

    client.post("/payments/verify", json={"txId": TX_ID, "invoiceId": first["id"]})
    data = client.post("/payments/verify", json={"txId": TX_ID, "invoiceId": second["id"]}).json()

    assert data["verified"] is False
    assert data["mismatches"] == ["txReused"]
    assert data["invoiceStatus"] == "pending"


def test_invoice_wrong_memo(client: TestClient, stacks_api):
    invoice = _create_invoice(client)["invoice"]
    stacks_api.get(f"/extended/v1/tx/{TX_ID}").mock(return_value=httpx.Response(200, json=stx_transfer()))

    data = client.post("/payments/verify", json={"txId": TX_ID, "invoiceId": invoice["id"]}).json()

    assert data["verified"] is False
    assert data["mismatches"] == ["memo"]


def test_unknown_invoice(client: TestClient):
    response = client.post("/payments/verify", json={"txId": TX_ID, "invoiceId": "inv_missing"})

    assert response.status_code == 404
    assert response.json()["error"] == "Invoice not found: inv_missing"
