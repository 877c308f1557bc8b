"""Agent selection under a budget, and capability-match recommendations.

Selection is a deterministic greedy first fit: preferred agents first, then
agents from the capability index in capability order. Nothing is swapped out
once chosen.
"""

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from x402_registry.registry.catalog import AgentCatalog
from x402_registry.registry.models import Agent

MAX_RECOMMENDATIONS = 10


@dataclass(frozen=True)
class Selection:
    """Ordered agents chosen for a set of needed capabilities.

    Attributes:
        agents: Selected agents in call order
        needed: Capabilities the selection was asked to cover
        budget: The original budget
    """

    agents: tuple[Agent, ...]
    needed: tuple[str, ...]
    budget: int

    @property
    def total_cost(self) -> int:
        return sum(agent.base_price for agent in self.agents)

    @property
    def remaining_budget(self) -> int:
        return self.budget - self.total_cost

    @property
    def covered(self) -> list[str]:
        declared = {cap for agent in self.agents for cap in agent.capabilities}
        return [cap for cap in self.needed if cap in declared]

    @property
    def uncovered(self) -> list[str]:
        declared = {cap for agent in self.agents for cap in agent.capabilities}
        return [cap for cap in self.needed if cap not in declared]

    @property
    def is_empty(self) -> bool:
        return not self.agents


def select_agents(
    catalog: AgentCatalog,
    capabilities: Sequence[str],
    budget: int,
    preferred: Iterable[str] | None = None,
) -> Selection:
    """Pick agents greedily without exceeding ``budget``.

    Preferred agents are only skipped when they are unknown or do not fit
    the remaining budget, never for capability reasons.
    """
    remaining = budget
    selected: list[Agent] = []
    seen: set[str] = set()

    def take(agent: Agent | None) -> None:
        nonlocal remaining
        if agent is None or agent.id in seen or agent.base_price > remaining:
            return
        selected.append(agent)
        seen.add(agent.id)
        remaining -= agent.base_price

    for agent_id in preferred or ():
        take(catalog.find(agent_id))

    for capability in capabilities:
        for agent_id in catalog.capability_index(capability):
            take(catalog.find(agent_id))

    return Selection(agents=tuple(selected), needed=tuple(capabilities), budget=budget)


@dataclass(frozen=True)
class Recommendation:
    agent: Agent
    score: float
    matched_capabilities: tuple[str, ...]

    @property
    def match_score(self) -> int:
        # half-up, so 12.5 -> 13
        return math.floor(self.score * 100 + 0.5)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.agent.id,
            "name": self.agent.name,
            "description": self.agent.description,
            "matchScore": self.match_score,
            "matchedCapabilities": list(self.matched_capabilities),
            "pricing": self.agent.pricing.to_dict(),
        }


def rank_agents(
    catalog: AgentCatalog,
    capabilities: Sequence[str],
    budget: int | None = None,
) -> list[Recommendation]:
    """Score every agent by the share of needed capabilities it declares.

    Agents with no match are dropped. Ties keep catalog order. When a budget
    is given, agents priced above it are filtered out.
    """
    needed = list(dict.fromkeys(capabilities))
    if not needed:
        return []
    wanted = set(needed)

    matches = []
    for agent in catalog.all_agents():
        matched = tuple(cap for cap in agent.capabilities if cap in wanted)
        if matched:
            matches.append(
                Recommendation(agent=agent, score=len(matched) / len(needed), matched_capabilities=matched)
            )

    matches.sort(key=lambda match: match.score, reverse=True)

    if budget is not None:
        matches = [match for match in matches if match.agent.base_price <= budget]
    return matches


def recommend(
    catalog: AgentCatalog,
    capabilities: Sequence[str],
    budget: int | None = None,
    limit: int = MAX_RECOMMENDATIONS,
) -> list[Recommendation]:
    return rank_agents(catalog, capabilities, budget)[:limit]
