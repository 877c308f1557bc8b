"""Shared fixtures for registry unit tests."""

from collections.abc import Callable

import pytest

from x402_registry.registry.catalog import AgentCatalog, InMemoryAgentStore
from x402_registry.registry.models import Agent, Pricing, PricingModel, Token

OWNER = "SP000000000000000000002Q6VF78"

AgentFactory = Callable[..., Agent]


@pytest.fixture
def make_agent() -> AgentFactory:
    """Build an agent with sensible defaults; override any field by keyword."""

    def factory(
        agent_id: str,
        capabilities: tuple[str, ...] | list[str],
        base_price: int = 100,
        name: str | None = None,
        endpoints: tuple[str, ...] = (),
        token: Token = Token.STX,
    ) -> Agent:
        return Agent(
            id=agent_id,
            name=name or agent_id.replace("-", " ").title(),
            capabilities=tuple(capabilities),
            owner=OWNER,
            pricing=Pricing(model=PricingModel.PER_CALL, base_price=base_price, token=token),
            endpoints=endpoints,
        )

    return factory


@pytest.fixture
def agent_store() -> InMemoryAgentStore:
    return InMemoryAgentStore()


@pytest.fixture
def catalog(agent_store: InMemoryAgentStore) -> AgentCatalog:
    return AgentCatalog(agent_store)


@pytest.fixture
async def stocked_catalog(catalog: AgentCatalog, make_agent: AgentFactory) -> AgentCatalog:
    """Catalog with a handful of agents, registered in this order.

    summarizer   summarize             100
    translator   translate             200
    polyglot     summarize, translate  250
    chain-reader blockchain-query      300
    scraper      web-scrape, search    700
    """
    await catalog.add(make_agent("summarizer", ["summarize"], 100))
    await catalog.add(make_agent("translator", ["translate"], 200))
    await catalog.add(make_agent("polyglot", ["summarize", "translate"], 250))
    await catalog.add(make_agent("chain-reader", ["blockchain-query"], 300))
    await catalog.add(make_agent("scraper", ["web-scrape", "search"], 700))
    return catalog
