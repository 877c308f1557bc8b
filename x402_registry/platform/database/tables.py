"""SQLAlchemy Core table definitions.

``db_metadata`` is the Alembic autogenerate target.
"""

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

db_metadata = sa.MetaData()

agents = sa.Table(
    "agents",
    db_metadata,
    sa.Column("id", sa.Text, primary_key=True),
    sa.Column("name", sa.Text, nullable=False),
    sa.Column("description", sa.Text, nullable=False, server_default=""),
    sa.Column("capabilities", JSONB, nullable=False, server_default="[]"),
    sa.Column("endpoints", JSONB, nullable=False, server_default="[]"),
    sa.Column("owner", sa.Text, nullable=False, index=True),
    sa.Column("pricing_model", sa.Text, nullable=False, server_default="per-call"),
    sa.Column("pricing_base", sa.BigInteger, nullable=False, server_default="0"),
    sa.Column("pricing_token", sa.Text, nullable=False, server_default="STX"),
    # insertion order, which the capability index preserves across restarts
    sa.Column("seq", sa.BigInteger, sa.Identity(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
)

endpoints = sa.Table(
    "endpoints",
    db_metadata,
    sa.Column("id", sa.Text, primary_key=True),
    sa.Column("url", sa.Text, nullable=False),
    sa.Column("name", sa.Text, nullable=False),
    sa.Column("description", sa.Text, nullable=False, server_default=""),
    sa.Column("owner", sa.Text, nullable=False, index=True),
    sa.Column("price", sa.BigInteger, nullable=False),
    sa.Column("token", sa.Text, nullable=False, index=True),
    sa.Column("tags", JSONB, nullable=False, server_default="[]"),
    sa.Column("category", sa.Text, nullable=False, server_default="utility", index=True),
    sa.Column("open_api_spec", sa.Text, nullable=True),
    sa.Column("verified", sa.Boolean, nullable=False, server_default=sa.false()),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("total_calls", sa.BigInteger, nullable=False, server_default="0"),
    sa.Column("calls_24h", sa.BigInteger, nullable=False, server_default="0"),
    sa.Column("revenue_24h", sa.BigInteger, nullable=False, server_default="0"),
    sa.Column("avg_response_time", sa.Integer, nullable=False, server_default="0"),
    sa.Column("uptime", sa.Float, nullable=False, server_default="100.0"),
    sa.Column("last_checked", sa.DateTime(timezone=True), nullable=True),
    sa.CheckConstraint("token IN ('STX', 'sBTC', 'USDh')", name="endpoints_token_check"),
)

invoices = sa.Table(
    "invoices",
    db_metadata,
    sa.Column("id", sa.Text, primary_key=True),
    sa.Column("amount", sa.BigInteger, nullable=False),
    sa.Column("token", sa.Text, nullable=False),
    sa.Column("recipient", sa.Text, nullable=False),
    sa.Column("memo", sa.Text, nullable=False),
    sa.Column("status", sa.Text, nullable=False, server_default="pending"),
    sa.Column("tx_id", sa.Text, nullable=True),
    sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.CheckConstraint("token IN ('STX', 'sBTC', 'USDh')", name="invoices_token_check"),
)

subscriptions = sa.Table(
    "subscriptions",
    db_metadata,
    sa.Column("id", sa.Text, primary_key=True),
    sa.Column("subscriber", sa.Text, nullable=False, index=True),
    sa.Column("endpoint_id", sa.Text, nullable=False, index=True),
    sa.Column("plan", sa.Text, nullable=False),
    sa.Column("token", sa.Text, nullable=False),
    sa.Column("calls_remaining", sa.BigInteger, nullable=False),
    sa.Column("calls_used", sa.BigInteger, nullable=False, server_default="0"),
    sa.Column("status", sa.Text, nullable=False, server_default="active"),
    sa.Column("tx_id", sa.Text, nullable=True),
    sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
)

endpoint_calls = sa.Table(
    "endpoint_calls",
    db_metadata,
    sa.Column("id", sa.BigInteger, sa.Identity(), primary_key=True),
    sa.Column("endpoint_id", sa.Text, nullable=False, index=True),
    sa.Column("caller", sa.Text, nullable=False),
    sa.Column("response_time", sa.Integer, nullable=False, server_default="0"),
    sa.Column("paid", sa.BigInteger, nullable=False, server_default="0"),
    sa.Column("token", sa.Text, nullable=False),
    sa.Column("called_at", sa.DateTime(timezone=True), nullable=False, index=True),
)

# one row per transaction that already paid for an execution, subscription or invoice
consumed_payments = sa.Table(
    "consumed_payments",
    db_metadata,
    sa.Column("tx_id", sa.Text, primary_key=True),
    sa.Column("purpose", sa.Text, nullable=False),
    sa.Column("amount", sa.BigInteger, nullable=False),
    sa.Column("token", sa.Text, nullable=False),
    sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=False),
)
