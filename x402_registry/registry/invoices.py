"""Payment invoices.

An invoice fixes amount, token, recipient and memo up front. It is settled
by a successful on-chain transfer that matches all four; each transaction
settles at most one invoice.
"""

import dataclasses
import logging
import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from x402_registry.registry.errors import NotFoundError, ValidationError
from x402_registry.registry.models import Invoice, InvoiceRequest, InvoiceStatus
from x402_registry.registry.payments import PaymentFacts, PaymentLedger, token_contract

logger = logging.getLogger(__name__)

DEFAULT_INVOICE_TTL = 300
INVOICE_MEMO_PREFIX = "invoice:"

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_invoice_id() -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(6))
    return f"inv_{int(time.time() * 1000)}_{suffix}"


class InvoiceRepository(Protocol):
    async def insert_invoice(self, invoice: Invoice) -> None: ...

    async def get_invoice(self, invoice_id: str) -> Invoice | None: ...

    async def mark_invoice_paid(self, invoice_id: str, tx_id: str) -> Invoice | None: ...


class InMemoryInvoiceRepository:
    def __init__(self) -> None:
        self._invoices: dict[str, Invoice] = {}

    async def insert_invoice(self, invoice: Invoice) -> None:
        self._invoices[invoice.id] = invoice

    async def get_invoice(self, invoice_id: str) -> Invoice | None:
        return self._invoices.get(invoice_id)

    async def mark_invoice_paid(self, invoice_id: str, tx_id: str) -> Invoice | None:
        invoice = self._invoices.get(invoice_id)
        if invoice is None:
            return None
        paid = dataclasses.replace(invoice, status=InvoiceStatus.PAID, tx_id=tx_id)
        self._invoices[invoice_id] = paid
        return paid


@dataclass(frozen=True)
class InvoiceSettlement:
    invoice: Invoice
    verified: bool
    mismatches: list[str] = field(default_factory=list)


def invoice_mismatches(invoice: Invoice, facts: PaymentFacts, now: datetime) -> list[str]:
    """Names of the invoice terms ``facts`` fails, in a fixed order."""
    mismatches = []
    if facts.amount < invoice.amount:
        mismatches.append("amount")
    if facts.token != str(invoice.token):
        mismatches.append("token")
    if facts.recipient != invoice.recipient:
        mismatches.append("recipient")
    if invoice.memo not in (facts.memo or ""):
        mismatches.append("memo")
    if invoice.is_expired(now):
        mismatches.append("expired")
    return mismatches


class InvoiceService:
    def __init__(self, repository: InvoiceRepository, ledger: PaymentLedger):
        self._repository = repository
        self._ledger = ledger

    async def create(self, payload: InvoiceRequest) -> Invoice:
        """Issue a pending invoice.

        Raises:
            ValidationError: If amount, token or recipient is missing
        """
        missing = [
            name
            for name, value in (
                ("amount", payload.amount),
                ("token", payload.token),
                ("recipient", payload.recipient),
            )
            if not value
        ]
        if missing:
            raise ValidationError("Required: amount, token, recipient", fields=missing)
        assert payload.amount and payload.token and payload.recipient

        invoice_id = generate_invoice_id()
        ttl = payload.expires_in or DEFAULT_INVOICE_TTL
        invoice = Invoice(
            id=invoice_id,
            amount=payload.amount,
            token=payload.token,
            recipient=payload.recipient,
            memo=payload.memo or f"{INVOICE_MEMO_PREFIX}{invoice_id}",
            expires_at=(datetime.now(UTC) + timedelta(seconds=ttl)).isoformat(),
        )
        await self._repository.insert_invoice(invoice)
        logger.info(f"Invoice {invoice.id} issued: {invoice.amount} {invoice.token}")
        return invoice

    async def get(self, invoice_id: str) -> Invoice:
        invoice = await self._repository.get_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice", invoice_id)
        return invoice

    async def settle(self, invoice_id: str, facts: PaymentFacts) -> InvoiceSettlement:
        """Check a successful transaction against the invoice and mark it paid.

        Settling again with the transaction that paid it is a no-op.

        Raises:
            NotFoundError: If the invoice does not exist
        """
        invoice = await self.get(invoice_id)
        if invoice.status == InvoiceStatus.PAID:
            if invoice.tx_id == facts.tx_id:
                return InvoiceSettlement(invoice, verified=True)
            return InvoiceSettlement(invoice, verified=False, mismatches=["alreadyPaid"])

        mismatches = invoice_mismatches(invoice, facts, datetime.now(UTC))
        if not mismatches and not await self._ledger.claim(facts, purpose=invoice.memo):
            mismatches.append("txReused")
        if mismatches:
            logger.info(f"Invoice {invoice.id} not settled by {facts.tx_id}: {mismatches}")
            return InvoiceSettlement(invoice, verified=False, mismatches=mismatches)

        paid = await self._repository.mark_invoice_paid(invoice.id, facts.tx_id)
        if paid is None:
            raise NotFoundError("Invoice", invoice_id)
        logger.info(f"Invoice {invoice.id} paid by {facts.tx_id}")
        return InvoiceSettlement(paid, verified=True)


def payment_instructions(invoice: Invoice) -> dict[str, Any]:
    """How to pay ``invoice`` from a Stacks wallet."""
    token = str(invoice.token)
    return {
        "contract": token_contract(token),
        "function": "stx-transfer" if token == "STX" else "transfer",
        "args": [invoice.amount, invoice.recipient, invoice.memo],
    }


def payment_uri(invoice: Invoice) -> str:
    return (
        f"stacks:{invoice.recipient}?amount={invoice.amount}"
        f"&token={invoice.token}&memo={invoice.memo}"
    )
