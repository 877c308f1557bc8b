"""Records the registry ships with, inserted at startup when absent."""

import logging

from x402_registry.registry.catalog import AgentCatalog
from x402_registry.registry.endpoints import EndpointRepository
from x402_registry.registry.models import Agent, Endpoint, EndpointStats, Pricing, PricingModel, Token
from x402_registry.registry.payments import REGISTRY_WALLET

logger = logging.getLogger(__name__)

COMMUNITY_OWNER = "SP1734723Q6206N1BAWQCJ5H9YFQBEPB96DRQB7KC"

SEED_AGENTS: tuple[Agent, ...] = (
    Agent(
        id="sbtc-yield-agent",
        name="sBTC Yield Agent",
        description=(
            "Autonomous DeFi agent for sBTC yield optimization. Deposits to vault, monitors "
            "positions, and executes looping strategies on Zest Protocol."
        ),
        capabilities=("defi", "yield-farming", "lending", "blockchain-query", "data-transform"),
        endpoints=("https://vault.pbtc21.dev",),
        owner=REGISTRY_WALLET,
        pricing=Pricing(model=PricingModel.PER_CALL, base_price=500, token=Token.SBTC),
    ),
)

SEED_ENDPOINTS: tuple[Endpoint, ...] = (
    Endpoint(
        id="sbtc-yield-vault",
        url="https://sbtc-yield-vault.p-d07.workers.dev",
        name="sBTC Yield Vault",
        description="Deposit sBTC and earn ~11% APY through leveraged looping strategy on Zest Protocol",
        owner=REGISTRY_WALLET,
        price=1000,
        token=Token.SBTC,
        tags=("defi", "yield", "vault", "sbtc", "zest", "lending"),
        category="finance",
        verified=True,
        created_at="2026-01-03T05:00:00.000Z",
        updated_at="2026-01-03T05:00:00.000Z",
        stats=EndpointStats(total_calls=42, calls_24h=12, revenue_24h=12000, avg_response_time=85, uptime=99.9),
    ),
    Endpoint(
        id="sbtc-yield-calc",
        url="https://sbtc-yield-x402.p-d07.workers.dev/calculate-yield",
        name="sBTC Yield Calculator",
        description="Calculate potential yields for sBTC deposits. Pay 0.05 STX per calculation.",
        owner=COMMUNITY_OWNER,
        price=50000,
        token=Token.STX,
        tags=("sbtc", "yield", "calculator", "defi"),
        category="finance",
        verified=True,
        created_at="2026-01-05T00:00:00.000Z",
        updated_at="2026-01-05T00:00:00.000Z",
    ),
    Endpoint(
        id="coin-refill",
        url="https://coin-refill.p-d07.workers.dev/refill",
        name="Coin Refill",
        description="Pay STX to refill wallet with any supported token (STX, sBTC, USDC). Dynamic pricing.",
        owner=COMMUNITY_OWNER,
        price=1000000,
        token=Token.STX,
        tags=("refill", "tokens", "wallet", "exchange", "swap"),
        category="utility",
        verified=True,
        created_at="2026-01-05T00:00:00.000Z",
        updated_at="2026-01-05T00:00:00.000Z",
    ),
)


async def seed_agents(catalog: AgentCatalog, agents: tuple[Agent, ...] = SEED_AGENTS) -> int:
    added = 0
    for agent in agents:
        if agent.id not in catalog:
            await catalog.add(agent)
            added += 1
    return added


async def seed_endpoints(repository: EndpointRepository, endpoints: tuple[Endpoint, ...] = SEED_ENDPOINTS) -> int:
    added = 0
    for endpoint in endpoints:
        if await repository.get_endpoint(endpoint.id) is None:
            await repository.insert_endpoint(endpoint)
            added += 1
    if added:
        logger.info(f"Seeded {added} endpoint(s)")
    return added
