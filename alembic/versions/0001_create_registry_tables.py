"""create agents and endpoints tables

Revision ID: 0001
Revises:
Create Date: 2026-01-05 00:00:00.000000

"""
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "agents",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("capabilities", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("endpoints", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("owner", sa.Text(), nullable=False),
        sa.Column("pricing_model", sa.Text(), nullable=False, server_default="per-call"),
        sa.Column("pricing_base", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("pricing_token", sa.Text(), nullable=False, server_default="STX"),
        sa.Column("seq", sa.BigInteger(), sa.Identity(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_agents_owner", "agents", ["owner"])

    op.create_table(
        "endpoints",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("owner", sa.Text(), nullable=False),
        sa.Column("price", sa.BigInteger(), nullable=False),
        sa.Column("token", sa.Text(), nullable=False),
        sa.Column("tags", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("category", sa.Text(), nullable=False, server_default="utility"),
        sa.Column("open_api_spec", sa.Text(), nullable=True),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_calls", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("calls_24h", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("revenue_24h", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("avg_response_time", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("uptime", sa.Float(), nullable=False, server_default="100.0"),
        sa.Column("last_checked", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("token IN ('STX', 'sBTC', 'USDh')", name="endpoints_token_check"),
    )
    op.create_index("ix_endpoints_owner", "endpoints", ["owner"])
    op.create_index("ix_endpoints_token", "endpoints", ["token"])
    op.create_index("ix_endpoints_category", "endpoints", ["category"])


def downgrade() -> None:
    op.drop_index("ix_endpoints_category", table_name="endpoints")
    op.drop_index("ix_endpoints_token", table_name="endpoints")
    op.drop_index("ix_endpoints_owner", table_name="endpoints")
    op.drop_table("endpoints")
    op.drop_index("ix_agents_owner", table_name="agents")
    op.drop_table("agents")
