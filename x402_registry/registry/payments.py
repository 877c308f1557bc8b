"""Payment demands, fees and payment-proof verification.

The registry never moves funds. It states what the caller must pay (a 402
payment demand) and checks the proof attached to the retried request.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Protocol

import httpx
import tenacity

from x402_registry.registry.errors import PaymentRequiredError, PaymentVerificationError
from x402_registry.registry.models import Token

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10_000
DEFAULT_FEE_BPS = 1_000
REGISTRY_WALLET = "SP2QXPFF4M72QYZWXE7S5321XJDJ2DD32DGEMN5QA"

NATIVE_CONTRACT = "native"
SIP010_TRANSFER = "transfer"
UNKNOWN_TOKEN = "unknown"

# SIP-010 contracts the registry accepts payment in; STX moves natively
TOKEN_CONTRACTS = MappingProxyType(
    {
        Token.SBTC: "SM3VDXK3WZZSA84XXFKAFAF15NNZX32CTSG82JFQ4.sbtc-token",
        Token.USDH: "SP2VCQJGH7PHP2DJK7Z0V48AGBHQAW3R3ZW1QF4N.usdh",
    }
)
_CONTRACT_TOKENS = MappingProxyType({contract: token for token, contract in TOKEN_CONTRACTS.items()})

_CLARITY_SOME_BUFFER = re.compile(r"\(some (0x[0-9a-fA-F]*)\)")


def platform_fee(amount: int, fee_bps: int = DEFAULT_FEE_BPS) -> int:
    """Fee on ``amount`` in basis points, rounded up to a whole unit."""
    # integer ceil avoids float error on large amounts
    return -(-amount * fee_bps // BPS_DENOMINATOR)


def token_contract(token: str) -> str:
    """Contract a payment in ``token`` is made through."""
    for known, contract in TOKEN_CONTRACTS.items():
        if str(known) == token:
            return contract
    return NATIVE_CONTRACT


@dataclass(frozen=True)
class PaymentDemand:
    """What a caller must pay before a request is executed.

    Attributes:
        amount: Total to pay, agent budget plus platform fee
        token: Settlement token
        recipient: Registry wallet address
        memo: ``<flow>:<id>``; the id names the record created once paid
        agent_budget: Share that goes to agents, when itemized
        platform_fee: Registry share, when itemized
    """

    amount: int
    token: str
    recipient: str
    memo: str
    agent_budget: int | None = None
    platform_fee: int | None = None

    @classmethod
    def for_budget(
        cls,
        budget: int,
        token: str,
        recipient: str,
        memo: str,
        fee_bps: int = DEFAULT_FEE_BPS,
        itemized: bool = True,
    ) -> "PaymentDemand":
        fee = platform_fee(budget, fee_bps)
        return cls(
            amount=budget + fee,
            token=token,
            recipient=recipient,
            memo=memo,
            agent_budget=budget if itemized else None,
            platform_fee=fee if itemized else None,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "amount": self.amount,
            "token": self.token,
            "recipient": self.recipient,
            "memo": self.memo,
        }
        if self.agent_budget is not None and self.platform_fee is not None:
            payload["breakdown"] = {
                "agentBudget": self.agent_budget,
                "platformFee": self.platform_fee,
                "total": self.amount,
            }
        return payload


# =============================================================================
# Transaction facts
# =============================================================================


@dataclass(frozen=True)
class PaymentFacts:
    """Payment-relevant fields of an on-chain transaction."""

    tx_id: str
    status: str
    tx_type: str
    amount: int
    token: str
    sender: str
    recipient: str
    memo: str | None = None
    block_height: int | None = None
    timestamp: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> dict[str, Any]:
        return {
            "txId": self.tx_id,
            "status": self.status,
            "type": self.tx_type,
            "amount": self.amount,
            "token": self.token,
            "sender": self.sender,
            "recipient": self.recipient,
            "memo": self.memo,
            "blockHeight": self.block_height,
            "timestamp": self.timestamp,
        }


def _decode_hex_memo(memo: str | None) -> str | None:
    if not memo:
        return None
    raw = memo.removeprefix("0x")
    try:
        return bytes.fromhex(raw).decode("utf-8", errors="ignore").rstrip("\x00") or None
    except ValueError:
        return memo


def _decode_clarity_memo(repr_: str | None) -> str | None:
    """``(some 0x...)`` buffers decode to text; ``none`` is no memo."""
    if not repr_ or repr_ == "none":
        return None
    match = _CLARITY_SOME_BUFFER.fullmatch(repr_)
    if match:
        return _decode_hex_memo(match.group(1))
    return repr_


def _parse_uint(repr_: str | None) -> int:
    try:
        return int((repr_ or "0").lstrip("u"))
    except ValueError:
        return 0


def extract_payment_facts(tx: dict[str, Any]) -> PaymentFacts:
    """Extract amount, token and parties from a Stacks API transaction.

    STX transfers are ``token_transfer`` transactions. SIP-010 transfers are
    ``transfer`` calls on a known token contract, with arguments
    ``(amount, sender, recipient, memo)``. Anything else pays nothing.
    """
    tx_type = tx.get("tx_type", "")
    common = {
        "tx_id": tx.get("tx_id", ""),
        "status": tx.get("tx_status", "unknown"),
        "tx_type": tx_type,
        "sender": tx.get("sender_address", ""),
        "block_height": tx.get("block_height"),
        "timestamp": tx.get("burn_block_time_iso"),
    }

    if tx_type == "token_transfer":
        transfer = tx.get("token_transfer") or {}
        return PaymentFacts(
            amount=_parse_uint(transfer.get("amount")),
            token=str(Token.STX),
            recipient=transfer.get("recipient_address", ""),
            memo=_decode_hex_memo(transfer.get("memo")),
            **common,
        )

    if tx_type == "contract_call":
        call = tx.get("contract_call") or {}
        token = _CONTRACT_TOKENS.get(call.get("contract_id", ""))
        if token is not None and call.get("function_name") == SIP010_TRANSFER:
            args = call.get("function_args") or []

            def arg(index: int) -> str | None:
                return args[index].get("repr") if len(args) > index else None

            return PaymentFacts(
                amount=_parse_uint(arg(0)),
                token=str(token),
                recipient=(arg(2) or "").replace("'", ""),
                memo=_decode_clarity_memo(arg(3)),
                **common,
            )

    return PaymentFacts(amount=0, token=UNKNOWN_TOKEN, recipient="", **common)


# =============================================================================
# Stacks API client
# =============================================================================


class StacksApiClient:
    """Read-only transaction lookup against a Stacks API node."""

    def __init__(self, client: httpx.AsyncClient, base_url: str, timeout_seconds: float = 10.0):
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds

    @tenacity.retry(
        wait=tenacity.wait_exponential(multiplier=0.5, max=4),
        stop=tenacity.stop_after_attempt(3),
        retry=tenacity.retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _get_tx(self, tx_id: str) -> httpx.Response:
        return await self._client.get(f"{self._base_url}/extended/v1/tx/{tx_id}", timeout=self._timeout)

    async def verify_transaction(self, tx_id: str) -> PaymentFacts | None:
        """Look up ``tx_id``.

        Returns:
            The payment facts, or None when the transaction is unknown

        Raises:
            PaymentVerificationError: If the API cannot be reached or answers garbage
        """
        try:
            response = await self._get_tx(tx_id)
        except httpx.HTTPError as e:
            raise PaymentVerificationError(str(e) or type(e).__name__) from e

        if response.status_code == 404 or response.status_code == 400:
            return None
        if response.status_code >= 400:
            raise PaymentVerificationError(f"Stacks API returned HTTP {response.status_code}")

        try:
            tx = response.json()
        except ValueError as e:
            raise PaymentVerificationError("Stacks API returned invalid JSON") from e
        return extract_payment_facts(tx)


# =============================================================================
# Consumed payments
# =============================================================================


class PaymentLedger(Protocol):
    """Remembers which transactions already paid for something."""

    async def claim(self, facts: PaymentFacts, purpose: str) -> bool:
        """Record ``facts.tx_id`` as spent. False when it was spent before."""
        ...


class InMemoryPaymentLedger:
    def __init__(self) -> None:
        self._claims: dict[str, str] = {}

    async def claim(self, facts: PaymentFacts, purpose: str) -> bool:
        if facts.tx_id in self._claims:
            return False
        self._claims[facts.tx_id] = purpose
        return True


# =============================================================================
# Proof verification
# =============================================================================


@dataclass(frozen=True)
class PaymentVerification:
    verified: bool
    reason: str | None = None
    facts: PaymentFacts | None = None


class PaymentVerifier(Protocol):
    async def verify_payment_proof(
        self, proof: str, expected_amount: int, token: str, memo: str | None = None
    ) -> PaymentVerification: ...


class TrustingVerifier:
    """Accepts any non-empty proof without looking it up."""

    async def verify_payment_proof(
        self, proof: str, expected_amount: int, token: str, memo: str | None = None
    ) -> PaymentVerification:
        if not proof.strip():
            return PaymentVerification(verified=False, reason="Empty payment proof")
        return PaymentVerification(verified=True)


class StacksPaymentVerifier:
    """Treats the proof as a transaction id and checks it on chain.

    A proof is accepted when the transaction succeeded, paid at least the
    expected amount of the expected token to the registry wallet, carries the
    expected memo, and has not paid for anything before.
    """

    def __init__(self, api: StacksApiClient, recipient: str, ledger: PaymentLedger | None = None):
        self._api = api
        self._recipient = recipient
        self._ledger = ledger or InMemoryPaymentLedger()

    async def verify_payment_proof(
        self, proof: str, expected_amount: int, token: str, memo: str | None = None
    ) -> PaymentVerification:
        tx_id = proof.strip()
        if not tx_id:
            return PaymentVerification(verified=False, reason="Empty payment proof")

        facts = await self._api.verify_transaction(tx_id)
        if facts is None:
            return PaymentVerification(verified=False, reason=f"Transaction not found: {tx_id}")
        if not facts.succeeded:
            return PaymentVerification(
                verified=False, reason=f"Transaction not successful: {facts.status}", facts=facts
            )
        if facts.token != token:
            return PaymentVerification(
                verified=False, reason=f"Payment made in {facts.token}, expected {token}", facts=facts
            )
        if facts.recipient != self._recipient:
            return PaymentVerification(verified=False, reason="Payment sent to wrong recipient", facts=facts)
        if facts.amount < expected_amount:
            return PaymentVerification(
                verified=False,
                reason=f"Insufficient payment: expected {expected_amount}, got {facts.amount}",
                facts=facts,
            )
        if memo is not None and memo not in (facts.memo or ""):
            return PaymentVerification(
                verified=False, reason=f"Payment memo does not reference {memo}", facts=facts
            )
        if not await self._ledger.claim(facts, purpose=facts.memo or memo or ""):
            return PaymentVerification(verified=False, reason=f"Payment already used: {tx_id}", facts=facts)

        logger.info(f"Payment {tx_id} verified: {facts.amount} {facts.token}")
        return PaymentVerification(verified=True, facts=facts)


async def require_payment(
    verifier: PaymentVerifier,
    proof: str,
    demand: PaymentDemand,
    memo_prefix: str,
    demand_body: Callable[[], dict[str, Any]],
) -> PaymentVerification:
    """Verify ``proof`` against ``demand``.

    The memo is checked by prefix only; each demand mints a fresh id.

    Raises:
        PaymentRequiredError: With a new demand, when the proof is rejected
    """
    verification = await verifier.verify_payment_proof(proof, demand.amount, demand.token, memo=memo_prefix)
    if not verification.verified:
        logger.info(f"Payment proof rejected: {verification.reason}")
        raise PaymentRequiredError(demand_body(), reason=verification.reason)
    return verification


def memo_reference(verification: PaymentVerification, prefix: str) -> str | None:
    """The id after ``prefix`` in the paid memo, e.g. ``exec_1_ab`` from ``execute:exec_1_ab``."""
    memo = verification.facts.memo if verification.facts else None
    if not memo or not memo.startswith(prefix):
        return None
    return memo.removeprefix(prefix).strip() or None
