"""Single-task execution and user-authored chains.

Both flows are gated by payment. Without a proof the caller gets a payment
demand and nothing runs. With a verified proof the agents are invoked in
order under a per-call timeout, bounded retries and an overall deadline.

Terminal status:
    completed: every planned call succeeded and every needed capability is covered
    partial: at least one call succeeded but something was lost on the way
    failed: no call succeeded
"""

import asyncio
import logging
import secrets
import string
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import tenacity

from x402_registry.platform.observability.metrics import (
    collect_invocation_metrics,
    record_execution,
    record_payment_demand,
)
from x402_registry.registry.catalog import AgentCatalog
from x402_registry.registry.errors import PaymentRequiredError, UpstreamUnavailableError, ValidationError
from x402_registry.registry.invokers import INTERNAL_ENDPOINT, AgentInvoker, Invocation
from x402_registry.registry.models import (
    Agent,
    AgentFailure,
    AgentUsage,
    ChainPlanStep,
    ChainRequest,
    ChainResult,
    ChainStepPayload,
    ChainStepResult,
    ExecutionRequest,
    ExecutionResult,
    ExecutionStatus,
    Token,
)
from x402_registry.registry.payments import (
    DEFAULT_FEE_BPS,
    REGISTRY_WALLET,
    PaymentDemand,
    PaymentVerifier,
    memo_reference,
    platform_fee,
    require_payment,
)
from x402_registry.registry.planning import build_plan, selection_candidates
from x402_registry.registry.selection import select_agents

logger = logging.getLogger(__name__)

UNKNOWN_AGENT_NAME = "Unknown"
EXECUTE_MEMO_PREFIX = "execute:"
CHAIN_MEMO_PREFIX = "chain:"

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_execution_id() -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(6))
    return f"exec_{int(time.time() * 1000)}_{suffix}"


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, UpstreamUnavailableError) and exc.transient


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


@dataclass(frozen=True)
class ExecutionPolicy:
    """Knobs for payment and agent invocation.

    Timeouts and backoff are in seconds.
    """

    fee_bps: int = DEFAULT_FEE_BPS
    recipient: str = REGISTRY_WALLET
    call_timeout: float = 10.0
    overall_timeout: float = 30.0
    retry_attempts: int = 3
    retry_backoff: float = 0.2
    retry_max_backoff: float = 2.0


class Orchestrator:
    """Runs executions and chains against the agent catalog."""

    def __init__(
        self,
        catalog: AgentCatalog,
        invoker: AgentInvoker,
        verifier: PaymentVerifier,
        policy: ExecutionPolicy | None = None,
    ):
        self._catalog = catalog
        self._invoker = invoker
        self._verifier = verifier
        self._policy = policy or ExecutionPolicy()

    @property
    def policy(self) -> ExecutionPolicy:
        return self._policy

    # =========================================================================
    # Single task
    # =========================================================================

    async def execute(self, request: ExecutionRequest, payment_proof: str | None = None) -> ExecutionResult:
        """Run a free-text task across the agents that cover it.

        Raises:
            ValidationError: If task, budget or token is missing
            PaymentRequiredError: If no proof is attached or the proof is rejected
        """
        task = (request.task or "").strip()
        if not task or request.budget is None or request.token is None:
            raise ValidationError("Required: task, budget, token", fields=_missing_execute_fields(request))
        budget = request.budget
        token = str(request.token)
        capabilities = self._catalog.taxonomy.infer(task)

        def demand_body() -> dict[str, Any]:
            return {"payment": self._execute_demand(budget, token).to_dict(), "task": task}

        if not payment_proof:
            selection = select_agents(self._catalog, capabilities, budget, request.preferred_agents)
            record_payment_demand("execute", token)
            raise PaymentRequiredError(demand_body() | {"estimatedAgents": len(selection.agents)})

        verification = await require_payment(
            self._verifier, payment_proof, self._execute_demand(budget, token), EXECUTE_MEMO_PREFIX, demand_body
        )

        # the id the caller paid for, when the proof carries one
        execution_id = memo_reference(verification, EXECUTE_MEMO_PREFIX) or generate_execution_id()
        started = time.monotonic()
        selection = select_agents(self._catalog, capabilities, budget, request.preferred_agents)
        plan = build_plan(task, selection_candidates(selection))
        agents = [self._catalog.get(step.agent_id) for step in plan.steps]

        usages: list[AgentUsage] = []
        failures: list[AgentFailure] = []
        outputs: list[dict[str, Any]] = []
        remaining = budget
        cut_short = False
        current: Agent | None = None

        deadline = request.timeout / 1000 if request.timeout else self._policy.overall_timeout
        try:
            async with asyncio.timeout(deadline):
                for agent in agents:
                    if agent.base_price > remaining:
                        cut_short = True
                        break
                    current = agent
                    try:
                        invocation = await self._invoke(agent, task, agent.base_price)
                    except UpstreamUnavailableError as e:
                        current = None
                        failures.append(
                            AgentFailure(agent_id=agent.id, endpoint=e.endpoint or _endpoint(agent), error=e.message)
                        )
                        continue
                    current = None
                    usages.append(
                        AgentUsage(
                            agent_id=agent.id,
                            endpoint=invocation.endpoint,
                            cost=agent.base_price,
                            response_time=round(invocation.response_time),
                        )
                    )
                    outputs.append({"agentId": agent.id, "output": invocation.output})
                    remaining -= agent.base_price
        except TimeoutError:
            cut_short = True
            logger.warning(f"Execution {execution_id} hit its {deadline}s deadline")
            if current is not None:
                failures.append(
                    AgentFailure(agent_id=current.id, endpoint=_endpoint(current), error="Deadline exceeded")
                )

        succeeded = {usage.agent_id for usage in usages}
        covered = {cap for agent in agents if agent.id in succeeded for cap in agent.capabilities}
        uncovered = [cap for cap in capabilities if cap not in covered]
        status = _terminal_status(
            succeeded=len(usages), degraded=bool(failures or uncovered or cut_short)
        )
        total_cost = sum(usage.cost for usage in usages)

        record_execution("execute", status)
        logger.info(
            f"Execution {execution_id} {status}: {len(usages)} agent(s) used, "
            f"{len(failures)} failed, cost {total_cost}"
        )
        return ExecutionResult(
            id=execution_id,
            task=task,
            status=status,
            result={
                "summary": f'Executed task "{task}" using {len(usages)} agents',
                "outputs": outputs,
            },
            agents_used=usages,
            total_cost=total_cost,
            platform_fee=platform_fee(total_cost, self._policy.fee_bps),
            duration=_elapsed_ms(started),
            failed_agents=failures,
            uncovered_capabilities=uncovered,
        )

    def _execute_demand(self, budget: int, token: str) -> PaymentDemand:
        return PaymentDemand.for_budget(
            budget,
            token=token,
            recipient=self._policy.recipient,
            memo=f"{EXECUTE_MEMO_PREFIX}{generate_execution_id()}",
            fee_bps=self._policy.fee_bps,
        )

    # =========================================================================
    # Chain
    # =========================================================================

    def plan_chain(self, steps: Sequence[ChainStepPayload]) -> list[ChainPlanStep]:
        """Resolve each step's agent. Unknown agents become zero-cost placeholders."""
        plan = []
        for index, step in enumerate(steps):
            agent = self._catalog.find(step.agent_id)
            plan.append(
                ChainPlanStep(
                    step=index + 1,
                    agent_id=step.agent_id,
                    agent_name=agent.name if agent else UNKNOWN_AGENT_NAME,
                    action=step.action,
                    estimated_cost=agent.base_price if agent else 0,
                    input_from=step.input_from or (f"step{index}" if index > 0 else "user"),
                    resolved=agent is not None,
                )
            )
        return plan

    async def chain(self, request: ChainRequest, payment_proof: str | None = None) -> ChainResult:
        """Run caller-authored steps in order.

        Raises:
            ValidationError: If there are no steps
            PaymentRequiredError: If no proof is attached or the proof is rejected
        """
        if not request.steps:
            raise ValidationError("Steps array required", fields=["steps"])

        plan = self.plan_chain(request.steps)
        estimated = sum(step.estimated_cost for step in plan)
        token = str(request.token or Token.SBTC)

        def demand() -> PaymentDemand:
            return PaymentDemand.for_budget(
                estimated,
                token=token,
                recipient=self._policy.recipient,
                memo=f"{CHAIN_MEMO_PREFIX}{generate_execution_id()}",
                fee_bps=self._policy.fee_bps,
                itemized=False,
            )

        def demand_body() -> dict[str, Any]:
            return {
                "payment": demand().to_dict(),
                "chain": [step.to_dict() for step in plan],
                "totalSteps": len(plan),
            }

        if not payment_proof:
            body = demand_body()
            record_payment_demand("chain", token)
            raise PaymentRequiredError(body)

        verification = await require_payment(
            self._verifier, payment_proof, demand(), CHAIN_MEMO_PREFIX, demand_body
        )

        chain_id = memo_reference(verification, CHAIN_MEMO_PREFIX) or generate_execution_id()
        started = time.monotonic()
        results: dict[int, ChainStepResult] = {}

        try:
            async with asyncio.timeout(self._policy.overall_timeout):
                for step in plan:
                    results[step.step] = await self._run_chain_step(step)
        except TimeoutError:
            logger.warning(f"Chain {chain_id} hit its {self._policy.overall_timeout}s deadline")
            for step in plan:
                if step.step not in results:
                    results[step.step] = ChainStepResult(
                        step=step.step, status="failed", error="Deadline exceeded"
                    )

        ordered = [results[step.step] for step in plan]
        completed = [result for result in ordered if result.status == "completed"]
        status = _terminal_status(succeeded=len(completed), degraded=len(completed) < len(ordered))
        total_cost = sum(result.cost for result in completed)

        record_execution("chain", status)
        logger.info(f"Chain {chain_id} {status}: {len(completed)}/{len(ordered)} step(s), cost {total_cost}")
        return ChainResult(
            id=chain_id,
            status=status,
            chain=plan,
            results=ordered,
            total_cost=total_cost,
            platform_fee=platform_fee(total_cost, self._policy.fee_bps),
            duration=_elapsed_ms(started),
        )

    async def _run_chain_step(self, step: ChainPlanStep) -> ChainStepResult:
        agent = self._catalog.find(step.agent_id)
        if agent is None:
            return ChainStepResult(step=step.step, status="skipped", error=f"Agent not found: {step.agent_id}")
        try:
            invocation = await self._invoke(agent, step.action, agent.base_price)
        except UpstreamUnavailableError as e:
            return ChainStepResult(step=step.step, status="failed", error=e.message)
        return ChainStepResult(
            step=step.step, status="completed", output=invocation.output, cost=agent.base_price
        )

    # =========================================================================
    # Shared
    # =========================================================================

    async def _invoke(self, agent: Agent, task: str, budget: int) -> Invocation:
        """Call one agent with a per-call timeout, retrying transient failures."""
        retrying = tenacity.AsyncRetrying(
            wait=tenacity.wait_exponential(
                multiplier=self._policy.retry_backoff, max=self._policy.retry_max_backoff
            ),
            stop=tenacity.stop_after_attempt(self._policy.retry_attempts),
            retry=tenacity.retry_if_exception(_is_transient),
            before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                with collect_invocation_metrics(agent.id):
                    try:
                        async with asyncio.timeout(self._policy.call_timeout):
                            return await self._invoker.invoke(agent, task, budget)
                    except TimeoutError as e:
                        raise UpstreamUnavailableError(
                            "call timed out", agent_id=agent.id, endpoint=_endpoint(agent)
                        ) from e
        raise AssertionError("unreachable")


def _endpoint(agent: Agent) -> str:
    return agent.primary_endpoint or INTERNAL_ENDPOINT


def _terminal_status(succeeded: int, degraded: bool) -> ExecutionStatus:
    if succeeded == 0:
        return ExecutionStatus.FAILED
    if degraded:
        return ExecutionStatus.PARTIAL
    return ExecutionStatus.COMPLETED


def _missing_execute_fields(request: ExecutionRequest) -> list[str]:
    missing = []
    if not (request.task or "").strip():
        missing.append("task")
    if request.budget is None:
        missing.append("budget")
    if request.token is None:
        missing.append("token")
    return missing
