"""Agent catalog with its capability index.

The catalog owns the in-memory view of registered agents and the
capability -> agent id index derived from it. Records are persisted through
an ``AgentStore``; the index is updated on every insert, one lock per
capability key.
"""

import logging
import secrets
import string
import threading
from typing import Any, Protocol

from x402_registry.registry.capabilities import DEFAULT_TAXONOMY, CapabilityTaxonomy
from x402_registry.registry.errors import NotFoundError, ValidationError
from x402_registry.registry.models import Agent, AgentRegistrationPayload, Pricing

logger = logging.getLogger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_agent_id() -> str:
    return "agent_" + "".join(secrets.choice(_ID_ALPHABET) for _ in range(8))


class AgentStore(Protocol):
    """Persistence contract for agent records."""

    async def find_agent(self, agent_id: str) -> Agent | None: ...

    async def insert_agent(self, agent: Agent) -> None: ...

    async def list_agents(self) -> list[Agent]: ...


class InMemoryAgentStore:
    """Process-local agent store, used when no database is configured."""

    def __init__(self) -> None:
        self._agents: dict[str, Agent] = {}

    async def find_agent(self, agent_id: str) -> Agent | None:
        return self._agents.get(agent_id)

    async def insert_agent(self, agent: Agent) -> None:
        self._agents[agent.id] = agent

    async def list_agents(self) -> list[Agent]:
        return list(self._agents.values())


class AgentCatalog:
    """Indexed collection of registered agents."""

    def __init__(
        self,
        store: AgentStore,
        taxonomy: CapabilityTaxonomy = DEFAULT_TAXONOMY,
    ) -> None:
        self._store = store
        self._taxonomy = taxonomy
        self._agents: dict[str, Agent] = {}
        # capability -> agent ids; dict keys keep registration order
        self._index: dict[str, dict[str, None]] = {}
        self._index_locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @property
    def taxonomy(self) -> CapabilityTaxonomy:
        return self._taxonomy

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    async def load(self) -> int:
        """Hydrate the catalog and rebuild the index from the store."""
        agents = await self._store.list_agents()
        for agent in agents:
            self._agents[agent.id] = agent
            self._index_agent(agent)
        logger.info(f"Agent catalog loaded: {len(agents)} agent(s)")
        return len(agents)

    async def register(self, payload: AgentRegistrationPayload) -> Agent:
        """Validate a registration payload and add the agent.

        Raises:
            ValidationError: If name, capabilities, owner or pricing is missing
        """
        missing = [
            name
            for name, value in (
                ("name", payload.name and payload.name.strip()),
                ("capabilities", payload.capabilities),
                ("owner", payload.owner and payload.owner.strip()),
                ("pricing", payload.pricing),
            )
            if not value
        ]
        if missing:
            raise ValidationError(
                "Required: name, capabilities, owner, pricing", fields=missing
            )
        assert payload.pricing is not None

        agent = Agent(
            id=self._fresh_id(),
            name=payload.name.strip(),  # type: ignore[union-attr]
            description=payload.description,
            capabilities=tuple(dict.fromkeys(payload.capabilities)),  # type: ignore[arg-type]
            endpoints=tuple(payload.endpoints),
            owner=payload.owner.strip(),  # type: ignore[union-attr]
            pricing=Pricing(
                model=payload.pricing.model,
                base_price=payload.pricing.base_price,
                token=payload.pricing.token,
            ),
        )
        return await self.add(agent)

    async def add(self, agent: Agent) -> Agent:
        """Persist an already-built agent and index its capabilities."""
        await self._store.insert_agent(agent)
        self._agents[agent.id] = agent
        self._index_agent(agent)
        logger.info(f"Agent '{agent.id}' registered with capabilities {list(agent.capabilities)}")
        return agent

    def find(self, agent_id: str) -> Agent | None:
        return self._agents.get(agent_id)

    def get(self, agent_id: str) -> Agent:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise NotFoundError("Agent", agent_id)
        return agent

    def all_agents(self) -> list[Agent]:
        return list(self._agents.values())

    def capability_index(self, capability: str) -> tuple[str, ...]:
        """Agent ids declaring ``capability``, in registration order."""
        return tuple(self._index.get(capability, ()))

    def capabilities(self) -> list[str]:
        return sorted(self._index)

    def list_capabilities(self) -> list[dict[str, Any]]:
        return [
            {
                "capability": capability,
                "agentCount": len(self._index[capability]),
                "description": self._taxonomy.describe(capability),
            }
            for capability in self.capabilities()
        ]

    def _fresh_id(self) -> str:
        agent_id = generate_agent_id()
        while agent_id in self._agents:
            agent_id = generate_agent_id()
        return agent_id

    def _lock_for(self, capability: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._index_locks.get(capability)
            if lock is None:
                lock = self._index_locks[capability] = threading.Lock()
            return lock

    def _index_agent(self, agent: Agent) -> None:
        for capability in agent.capabilities:
            with self._lock_for(capability):
                ids = self._index.get(capability)
                if ids is None:
                    ids = self._index[capability] = {}
                ids[agent.id] = None
