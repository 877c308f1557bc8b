"""x402 compliance report for a provider's endpoint.

Calls the URL once without payment and grades the answer. The first four
checks are required for compliance; token and CORS are advisory.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from x402_registry.registry.errors import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD")
REQUIRED_CHECKS = 4

REACHABLE = "Endpoint reachable"
RETURNS_402 = "Returns 402 Payment Required"
HAS_AMOUNT = "Contains payment information"
HAS_RECIPIENT = "Has recipient address"
HAS_TOKEN = "Token type specified"
HAS_CORS = "CORS enabled"

RECOMMENDATIONS = {
    RETURNS_402: "Return HTTP 402 status code for unpaid requests",
    HAS_AMOUNT: "Include 'amount' or 'maxAmountRequired' in 402 response body",
    HAS_RECIPIENT: "Include 'payTo' or 'recipient' Stacks address in response",
    HAS_TOKEN: "Specify 'tokenType' (sBTC, STX, or USDh) in response",
    HAS_CORS: "Add CORS headers to allow browser-based agent calls",
}
ALL_PASSED = [
    "Your endpoint is fully x402 compliant!",
    "Consider registering it at POST /registry/register",
]


@dataclass(frozen=True)
class ComplianceCheck:
    name: str
    passed: bool
    details: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "passed": self.passed, "details": self.details}


def _first(body: dict[str, Any] | None, *paths: str) -> Any:
    """First truthy value among dotted ``paths`` in ``body``."""
    for path in paths:
        value: Any = body
        for key in path.split("."):
            value = value.get(key) if isinstance(value, dict) else None
        if value:
            return value
    return None


def recommendations(checks: list[ComplianceCheck]) -> list[str]:
    advice = [RECOMMENDATIONS[c.name] for c in checks if not c.passed and c.name in RECOMMENDATIONS]
    return advice or list(ALL_PASSED)


class ComplianceChecker:
    def __init__(self, client: httpx.AsyncClient, timeout_seconds: float = 10.0):
        self._client = client
        self._timeout = timeout_seconds

    async def check(self, url: str | None, method: str = "GET") -> dict[str, Any]:
        """Grade ``url`` against the x402 payment handshake.

        Raises:
            ValidationError: If the URL is missing or the method is unsupported
        """
        if not url:
            raise ValidationError("URL required", fields=["url"])
        method = (method or "GET").upper()
        if method not in ALLOWED_METHODS:
            raise ValidationError(f"Unsupported method: {method}", fields=["method"])

        started = time.monotonic()
        try:
            response = await self._client.request(method, url, timeout=self._timeout)
        except httpx.HTTPError as e:
            logger.info(f"Compliance check could not reach {url}: {e}")
            failed = ComplianceCheck(REACHABLE, False, f"Error: {e}")
            return {"url": url, "compliant": False, "tests": [failed.to_dict()], "error": str(e)}
        response_time = int((time.monotonic() - started) * 1000)

        returns_402 = response.status_code == 402
        body = None
        if returns_402:
            try:
                body = response.json()
            except ValueError:
                body = None
            if not isinstance(body, dict):
                body = None

        amount = _first(body, "maxAmountRequired", "amount", "payment.amount")
        recipient = _first(body, "payTo", "recipient", "payment.address", "payment.recipient")
        token = _first(body, "tokenType", "token", "payment.token")
        cors = response.headers.get("Access-Control-Allow-Origin")

        checks = [
            ComplianceCheck(REACHABLE, True, f"Response time: {response_time}ms"),
            ComplianceCheck(
                RETURNS_402,
                returns_402,
                "Correct status code" if returns_402 else f"Got {response.status_code} instead",
            ),
            ComplianceCheck(HAS_AMOUNT, bool(amount), f"Amount: {amount}" if amount else "Missing amount field"),
            ComplianceCheck(
                HAS_RECIPIENT, bool(recipient), f"Pay to: {recipient}" if recipient else "Missing recipient field"
            ),
            ComplianceCheck(
                HAS_TOKEN, bool(token), f"Token: {token}" if token else "Missing token field (defaults to STX)"
            ),
            ComplianceCheck(
                HAS_CORS,
                bool(cors),
                "CORS headers present" if cors else "Missing CORS headers (may block browser calls)",
            ),
        ]
        return {
            "url": url,
            "compliant": all(c.passed for c in checks[:REQUIRED_CHECKS]),
            "fullyCompliant": all(c.passed for c in checks),
            "tests": [c.to_dict() for c in checks],
            "paymentDetails": body,
            "recommendations": recommendations(checks),
        }
