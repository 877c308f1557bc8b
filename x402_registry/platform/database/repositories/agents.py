"""Agent records in PostgreSQL."""

from datetime import datetime
from typing import Any

import sqlalchemy as sa

from x402_registry.platform.database.engine import DbEngine
from x402_registry.platform.database.tables import agents
from x402_registry.registry.models import Agent, Pricing, PricingModel, Token


def _row_to_agent(row: Any) -> Agent:
    return Agent(
        id=row.id,
        name=row.name,
        description=row.description or "",
        capabilities=tuple(row.capabilities or ()),
        endpoints=tuple(row.endpoints or ()),
        owner=row.owner,
        pricing=Pricing(
            model=PricingModel(row.pricing_model),
            base_price=row.pricing_base,
            token=Token(row.pricing_token),
        ),
        created_at=row.created_at.isoformat(),
        updated_at=row.updated_at.isoformat(),
    )


class SqlAgentStore:
    """``AgentStore`` backed by the ``agents`` table."""

    def __init__(self, db_engine: DbEngine) -> None:
        self._db = db_engine

    async def find_agent(self, agent_id: str) -> Agent | None:
        async with self._db.get_session() as session:
            result = await session.execute(sa.select(agents).where(agents.c.id == agent_id))
            row = result.first()
        return _row_to_agent(row) if row else None

    async def insert_agent(self, agent: Agent) -> None:
        async with self._db.get_session() as session:
            await session.execute(
                sa.insert(agents).values(
                    id=agent.id,
                    name=agent.name,
                    description=agent.description,
                    capabilities=list(agent.capabilities),
                    endpoints=list(agent.endpoints),
                    owner=agent.owner,
                    pricing_model=str(agent.pricing.model),
                    pricing_base=agent.pricing.base_price,
                    pricing_token=str(agent.pricing.token),
                    created_at=datetime.fromisoformat(agent.created_at),
                    updated_at=datetime.fromisoformat(agent.updated_at),
                )
            )

    async def list_agents(self) -> list[Agent]:
        async with self._db.get_session() as session:
            result = await session.execute(sa.select(agents).order_by(agents.c.seq))
            rows = result.fetchall()
        return [_row_to_agent(row) for row in rows]
