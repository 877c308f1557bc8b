"""Callable-agent implementations used by the orchestrator.

``SimulatedInvoker`` never touches the network and is the default.
``HttpAgentInvoker`` posts the task to the agent's primary endpoint.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from x402_registry.registry.errors import UpstreamUnavailableError
from x402_registry.registry.models import Agent

logger = logging.getLogger(__name__)

INTERNAL_ENDPOINT = "internal"


@dataclass(frozen=True)
class Invocation:
    """Output of one agent call.

    Attributes:
        output: Whatever the agent returned
        response_time: Call duration in milliseconds
        endpoint: The URL that served the call, or ``internal``
    """

    output: Any
    response_time: float
    endpoint: str


class AgentInvoker(Protocol):
    async def invoke(self, agent: Agent, task: str, budget: int) -> Invocation: ...


class SimulatedInvoker:
    """Pretends to call agents, with a response time drawn from 100..600 ms.

    ``sleep`` makes the simulated latency real, which is only useful when
    exercising deadlines.
    """

    def __init__(self, sleep: bool = False, rng: random.Random | None = None):
        self._sleep = sleep
        self._rng = rng or random.Random()

    async def invoke(self, agent: Agent, task: str, budget: int) -> Invocation:
        response_time = self._rng.uniform(100, 600)
        if self._sleep:
            await asyncio.sleep(response_time / 1000)
        return Invocation(
            output=f"Result from {agent.name}",
            response_time=response_time,
            endpoint=agent.primary_endpoint or INTERNAL_ENDPOINT,
        )


class HttpAgentInvoker:
    """Invokes agents over HTTP using a shared client.

    Connection errors, timeouts, 429 and 5xx responses are transient and may
    be retried by the caller. Other 4xx responses and agents without an
    endpoint are not.
    """

    def __init__(self, client: httpx.AsyncClient, timeout_seconds: float = 10.0):
        self._client = client
        self._timeout = timeout_seconds

    async def invoke(self, agent: Agent, task: str, budget: int) -> Invocation:
        endpoint = agent.primary_endpoint
        if not endpoint:
            raise UpstreamUnavailableError("agent has no endpoint", agent_id=agent.id, transient=False)

        started = time.perf_counter()
        try:
            response = await self._client.post(
                endpoint,
                json={"task": task, "budget": budget},
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            raise UpstreamUnavailableError("request timed out", agent_id=agent.id, endpoint=endpoint) from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError(str(e) or type(e).__name__, agent_id=agent.id, endpoint=endpoint) from e

        response_time = (time.perf_counter() - started) * 1000

        if response.status_code == 429 or response.status_code >= 500:
            raise UpstreamUnavailableError(
                f"HTTP {response.status_code}", agent_id=agent.id, endpoint=endpoint
            )
        if response.status_code >= 400:
            raise UpstreamUnavailableError(
                f"HTTP {response.status_code}", agent_id=agent.id, endpoint=endpoint, transient=False
            )

        logger.debug(f"Agent '{agent.id}' answered in {response_time:.0f}ms")
        return Invocation(output=_decode(response), response_time=response_time, endpoint=endpoint)


def _decode(response: httpx.Response) -> Any:
    if "json" in response.headers.get("content-type", ""):
        try:
            return response.json()
        except ValueError:
            logger.warning(f"Agent at {response.url} sent invalid JSON")
    return response.text
