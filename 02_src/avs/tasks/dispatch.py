"""Routes new tasks to agents and notifies them."""

import asyncio
from decimal import Decimal
from typing import Any

from ..agents import AgentDirectory, IAgentMatcher
from ..collaborators import IAgentCallbacks
from ..errors import (
    AgentIneligible,
    CollaboratorUnavailable,
    InvalidTransition,
    LedgerTxFailed,
    LedgerUnavailable,
    NotFound,
)
from ..ledger import ILedger, TxReceipt
from ..logging_config import get_logger
from ..models import Agent, Task, TaskStatus
from ..models.common import to_decimal
from .registry import TaskRegistry

logger = get_logger(__name__)


class TaskDispatcher:
    """Creates tasks, picks agents for them and calls the agents' endpoints.

    A failed callback is noted on the task and leaves it where it is; the
    caller decides whether to reassign.
    """

    def __init__(
        self,
        registry: TaskRegistry,
        directory: AgentDirectory,
        matcher: IAgentMatcher,
        callbacks: IAgentCallbacks,
        ledger: ILedger | None = None,
        ledger_timeout: float = 120.0,
    ):
        self._registry = registry
        self._directory = directory
        self._matcher = matcher
        self._callbacks = callbacks
        self._ledger = ledger
        self._ledger_timeout = ledger_timeout

    async def create_and_dispatch(
        self,
        creator: str,
        task_type: str,
        task_data: Any,
        payment: Decimal | int | str = 0,
    ) -> Task:
        """Create a task and assign it to the best ranked eligible agent.

        With no eligible agent the task stays `created`.
        """
        task = await self._registry.create(creator, task_type, task_data, payment)
        candidates = await self._directory.eligible_agents(task_type)
        ranked = await self._matcher.rank(task_type, task_data, candidates)
        if not ranked:
            logger.info(
                "No eligible agent for task %s (%s)", task.id, task_type,
                extra={"task_id": task.id},
            )
            return task

        agent = ranked[0]
        task = await self._registry.assign(task.id, agent.address)
        return await self._notify(task, agent)

    async def assign(self, task_id: str, agent_address: str) -> Task:
        """Assign a created task to a specific eligible agent."""
        task = await self._registry.get(task_id)
        agent = await self._eligible(agent_address, task.task_type)
        task = await self._registry.assign(task.id, agent.address)
        return await self._notify(task, agent)

    async def reassign(self, task_id: str, agent_address: str) -> Task:
        """Hand an in-flight task to another eligible agent."""
        task = await self._registry.get(task_id)
        agent = await self._eligible(agent_address, task.task_type)
        task = await self._registry.reassign(task.id, agent.address)
        return await self._notify(task, agent)

    async def execute_for_user(
        self,
        user_id: str,
        agent_id: str,
        task_type: str,
        task_data: Any,
        payment: Decimal | int | str = 0,
    ) -> Task:
        """Run a task on an agent the user registered with an allowance."""
        if not await self._directory.has_allowance(user_id, agent_id):
            raise NotFound("user agent", f"{user_id}/{agent_id}")
        agent = await self._eligible(agent_id, task_type)

        task = await self._registry.create(user_id, task_type, task_data, payment)
        task = await self._registry.submit(task.id, agent.address)
        return await self._notify(task, agent)

    async def claim_on_ledger(self, task_id: str) -> TxReceipt:
        """Send assignTask for a ledger task.

        The local transition follows from the TaskAssigned event.
        """
        task = await self._registry.get(task_id)
        if task.status != TaskStatus.CREATED:
            raise InvalidTransition(task.id, task.status.value, TaskStatus.ASSIGNED.value)
        if task.ledger_id is None:
            raise InvalidTransition(
                task.id,
                task.status.value,
                TaskStatus.ASSIGNED.value,
                "task is not recorded on the ledger",
            )
        return await self._send(
            self._ledger_call("assignTask").assign_task(task.ledger_id), task.id
        )

    async def register_agent_for_user_on_chain(
        self, user_id: str, agent_id: str, allowance: Decimal | int | str
    ) -> TxReceipt:
        """Register an agent for a user on the ledger, then record the allowance."""
        await self._directory.get(agent_id)
        amount = to_decimal(allowance)
        if amount < 0:
            raise ValueError("allowance must be non-negative")
        if amount != amount.to_integral_value():
            raise ValueError("on-chain allowance must be a whole number of token units")

        receipt = await self._send(
            self._ledger_call("registerAgentForOtherUser").register_agent_for_other_user(
                user_id, agent_id, int(amount)
            )
        )
        await self._directory.set_allowance(user_id, agent_id, amount)
        return receipt

    def _ledger_call(self, name: str) -> ILedger:
        if self._ledger is None:
            raise LedgerUnavailable(f"No ledger configured for {name}")
        return self._ledger

    async def _send(self, call, task_id: str | None = None) -> TxReceipt:
        try:
            return await asyncio.wait_for(call, timeout=self._ledger_timeout)
        except asyncio.TimeoutError:
            error = LedgerTxFailed(f"Transaction not confirmed within {self._ledger_timeout}s")
        except (LedgerTxFailed, LedgerUnavailable) as e:
            error = e
        if task_id is not None:
            await self._registry.note_error(task_id, error.code, error.message)
        raise error

    async def _eligible(self, address: str, task_type: str) -> Agent:
        agent = await self._directory.get(address)
        if not agent.is_active:
            raise AgentIneligible(address, "agent is inactive")
        if not agent.supports(task_type):
            raise AgentIneligible(address, f"agent does not support {task_type}")
        return agent

    async def _notify(self, task: Task, agent: Agent) -> Task:
        url = agent.callback_url
        if not url:
            return task
        payload = {
            "taskId": task.id,
            "taskType": task.task_type,
            "taskData": task.task_data,
            "creator": task.creator,
        }
        try:
            response = await self._callbacks.call(url, payload)
        except CollaboratorUnavailable as e:
            return await self._registry.note_error(task.id, e.code, e.message)
        return await self._registry.note_agent_response(task.id, response)
