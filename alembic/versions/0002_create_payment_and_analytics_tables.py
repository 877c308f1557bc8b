"""create invoices, subscriptions, endpoint_calls and consumed_payments tables

Revision ID: 0002
Revises: 0001
Create Date: 2026-02-02 00:00:00.000000

"""
import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "invoices",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("token", sa.Text(), nullable=False),
        sa.Column("recipient", sa.Text(), nullable=False),
        sa.Column("memo", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("tx_id", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("token IN ('STX', 'sBTC', 'USDh')", name="invoices_token_check"),
    )

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("subscriber", sa.Text(), nullable=False),
        sa.Column("endpoint_id", sa.Text(), nullable=False),
        sa.Column("plan", sa.Text(), nullable=False),
        sa.Column("token", sa.Text(), nullable=False),
        sa.Column("calls_remaining", sa.BigInteger(), nullable=False),
        sa.Column("calls_used", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("status", sa.Text(), nullable=False, server_default="active"),
        sa.Column("tx_id", sa.Text(), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_subscriptions_subscriber", "subscriptions", ["subscriber"])
    op.create_index("ix_subscriptions_endpoint_id", "subscriptions", ["endpoint_id"])

    op.create_table(
        "endpoint_calls",
        sa.Column("id", sa.BigInteger(), sa.Identity(), primary_key=True),
        sa.Column("endpoint_id", sa.Text(), nullable=False),
        sa.Column("caller", sa.Text(), nullable=False),
        sa.Column("response_time", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("paid", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("token", sa.Text(), nullable=False),
        sa.Column("called_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_endpoint_calls_endpoint_id", "endpoint_calls", ["endpoint_id"])
    op.create_index("ix_endpoint_calls_called_at", "endpoint_calls", ["called_at"])

    op.create_table(
        "consumed_payments",
        sa.Column("tx_id", sa.Text(), primary_key=True),
        sa.Column("purpose", sa.Text(), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("token", sa.Text(), nullable=False),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("consumed_payments")
    op.drop_index("ix_endpoint_calls_called_at", table_name="endpoint_calls")
    op.drop_index("ix_endpoint_calls_endpoint_id", table_name="endpoint_calls")
    op.drop_table("endpoint_calls")
    op.drop_index("ix_subscriptions_endpoint_id", table_name="subscriptions")
    op.drop_index("ix_subscriptions_subscriber", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_table("invoices")
