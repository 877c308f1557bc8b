"""Execution plan building."""

from collections.abc import Iterable, Sequence
from itertools import islice
from typing import NamedTuple, Protocol

from x402_registry.registry.models import Agent, ExecutionPlan, PlanStep
from x402_registry.registry.selection import Selection

RECOMMENDATION_PLAN_LIMIT = 5
BASE_STEP_TIME = 500
STEP_TIME_INCREMENT = 200


class PlanCandidate(Protocol):
    @property
    def agent(self) -> Agent: ...

    @property
    def matched_capabilities(self) -> Sequence[str]: ...


class SelectedAgent(NamedTuple):
    agent: Agent
    matched_capabilities: tuple[str, ...]


def step_time(index: int) -> int:
    """Estimated time of the step at 0-based ``index``."""
    return BASE_STEP_TIME + index * STEP_TIME_INCREMENT


def build_plan(task: str, candidates: Iterable[PlanCandidate], limit: int | None = None) -> ExecutionPlan:
    """Turn ranked or selected agents into an ordered, costed plan.

    Args:
        task: The task being planned
        candidates: Agents with the capabilities they cover, in call order
        limit: Keep at most this many leading candidates

    Returns:
        The plan; empty with zero totals when there are no candidates
    """
    steps = tuple(
        PlanStep(
            step=index + 1,
            agent_id=candidate.agent.id,
            agent_name=candidate.agent.name,
            action="Execute: " + ", ".join(candidate.matched_capabilities),
            estimated_cost=candidate.agent.base_price,
            estimated_time=step_time(index),
        )
        for index, candidate in enumerate(islice(candidates, limit))
    )
    return ExecutionPlan(steps=steps)


def selection_candidates(selection: Selection) -> list[SelectedAgent]:
    """Pair each selected agent with the needed capabilities it declares."""
    return [
        SelectedAgent(
            agent=agent,
            matched_capabilities=tuple(cap for cap in agent.capabilities if cap in selection.needed),
        )
        for agent in selection.agents
    ]
