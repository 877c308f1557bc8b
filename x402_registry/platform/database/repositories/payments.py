"""Invoices, subscriptions and spent payment transactions in PostgreSQL."""

from datetime import UTC, datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from x402_registry.platform.database.engine import DbEngine
from x402_registry.platform.database.tables import consumed_payments, invoices, subscriptions
from x402_registry.registry.models import Invoice, InvoiceStatus, Subscription, Token
from x402_registry.registry.payments import PaymentFacts


def _row_to_invoice(row: Any) -> Invoice:
    return Invoice(
        id=row.id,
        amount=row.amount,
        token=Token(row.token),
        recipient=row.recipient,
        memo=row.memo,
        expires_at=row.expires_at.isoformat(),
        status=InvoiceStatus(row.status),
        tx_id=row.tx_id,
        created_at=row.created_at.isoformat(),
    )


def _row_to_subscription(row: Any) -> Subscription:
    return Subscription(
        id=row.id,
        subscriber=row.subscriber,
        endpoint_id=row.endpoint_id,
        plan=row.plan,
        token=Token(row.token),
        calls_remaining=row.calls_remaining,
        calls_used=row.calls_used,
        status=row.status,
        tx_id=row.tx_id,
        starts_at=row.starts_at.isoformat(),
        expires_at=row.expires_at.isoformat(),
    )


class SqlInvoiceRepository:
    def __init__(self, db_engine: DbEngine) -> None:
        self._db = db_engine

    async def insert_invoice(self, invoice: Invoice) -> None:
        async with self._db.get_session() as session:
            await session.execute(
                sa.insert(invoices).values(
                    id=invoice.id,
                    amount=invoice.amount,
                    token=str(invoice.token),
                    recipient=invoice.recipient,
                    memo=invoice.memo,
                    status=str(invoice.status),
                    tx_id=invoice.tx_id,
                    expires_at=datetime.fromisoformat(invoice.expires_at),
                    created_at=datetime.fromisoformat(invoice.created_at),
                )
            )

    async def get_invoice(self, invoice_id: str) -> Invoice | None:
        async with self._db.get_session() as session:
            result = await session.execute(sa.select(invoices).where(invoices.c.id == invoice_id))
            row = result.first()
        return _row_to_invoice(row) if row else None

    async def mark_invoice_paid(self, invoice_id: str, tx_id: str) -> Invoice | None:
        update = (
            sa.update(invoices)
            .where(invoices.c.id == invoice_id)
            .values(status=str(InvoiceStatus.PAID), tx_id=tx_id)
            .returning(invoices)
        )
        async with self._db.get_session() as session:
            row = (await session.execute(update)).first()
        return _row_to_invoice(row) if row else None


class SqlSubscriptionRepository:
    def __init__(self, db_engine: DbEngine) -> None:
        self._db = db_engine

    async def insert_subscription(self, subscription: Subscription) -> None:
        async with self._db.get_session() as session:
            await session.execute(
                sa.insert(subscriptions).values(
                    id=subscription.id,
                    subscriber=subscription.subscriber,
                    endpoint_id=subscription.endpoint_id,
                    plan=subscription.plan,
                    token=str(subscription.token),
                    calls_remaining=subscription.calls_remaining,
                    calls_used=subscription.calls_used,
                    status=subscription.status,
                    tx_id=subscription.tx_id,
                    starts_at=datetime.fromisoformat(subscription.starts_at),
                    expires_at=datetime.fromisoformat(subscription.expires_at),
                )
            )

    async def get_subscription(self, subscription_id: str) -> Subscription | None:
        async with self._db.get_session() as session:
            result = await session.execute(sa.select(subscriptions).where(subscriptions.c.id == subscription_id))
            row = result.first()
        return _row_to_subscription(row) if row else None


class SqlPaymentLedger:
    """``PaymentLedger`` backed by the ``consumed_payments`` table.

    The primary key on ``tx_id`` makes a claim atomic across workers.
    """

    def __init__(self, db_engine: DbEngine) -> None:
        self._db = db_engine

    async def claim(self, facts: PaymentFacts, purpose: str) -> bool:
        insert = (
            postgresql.insert(consumed_payments)
            .values(
                tx_id=facts.tx_id,
                purpose=purpose,
                amount=facts.amount,
                token=facts.token,
                consumed_at=datetime.now(UTC),
            )
            .on_conflict_do_nothing(index_elements=[consumed_payments.c.tx_id])
        )
        async with self._db.get_session() as session:
            result = await session.execute(insert)
            return bool(result.rowcount)  # type: ignore[attr-defined]
