"""Agent directory: the single writer of agent and allowance records."""

from decimal import Decimal
from typing import Protocol

from ..errors import Conflict, NotFound
from ..logging_config import get_logger
from ..models import Agent, Allowance
from ..models.common import to_decimal
from ..storage import IStorage
from ..tracker import ITracker

logger = get_logger(__name__)

AGENT_WRITE_ATTEMPTS = 10


class IAgentDirectory(Protocol):
    """Lookup and capability checks over agent records."""

    async def get(self, address: str) -> Agent:
        ...

    async def is_eligible(self, address: str, task_type: str) -> bool:
        ...

    async def update_reputation(self, address: str, delta: int) -> Agent:
        ...


class AgentDirectory:
    """CRUD view over agent records plus user allowances."""

    def __init__(self, storage: IStorage, tracker: ITracker | None = None):
        self._storage = storage
        self._tracker = tracker

    async def register(
        self,
        address: str,
        metadata: dict | None = None,
        *,
        is_active: bool = True,
        reputation: int | None = None,
    ) -> Agent:
        """Create or overwrite an agent record.

        Re-registering keeps the agent's reputation and registration time
        unless a reputation is given explicitly. The index entry is never
        duplicated.
        """
        for _ in range(AGENT_WRITE_ATTEMPTS):
            existing = await self._storage.get_agent(address)
            agent = Agent(address=address, metadata=dict(metadata or {}), is_active=is_active)
            if existing:
                agent.reputation = existing.reputation
                agent.registered_at = existing.registered_at
            if reputation is not None:
                agent.reputation = max(0, int(reputation))
            if await self._storage.compare_and_set_agent(
                agent, existing.version if existing else None
            ):
                agent.version = existing.version + 1 if existing else 0
                break
        else:
            raise _conflict(address)

        logger.info(
            "Agent %s %s", address, "re-registered" if existing else "registered",
            extra={"agent": address},
        )
        await self._track("agent_registered", {"address": address, "update": bool(existing)})
        return agent

    async def get(self, address: str) -> Agent:
        """Get an agent by address. Raises NotFound."""
        agent = await self._storage.get_agent(address)
        if agent is None:
            raise NotFound("agent", address)
        return agent

    async def list_agents(self) -> list[Agent]:
        """All indexed agents; index entries without a record are skipped."""
        agents = []
        for address in await self._storage.list_agent_addresses():
            agent = await self._storage.get_agent(address)
            if agent is None:
                logger.warning("Agent index entry %s has no record", address)
                continue
            agents.append(agent)
        return agents

    async def remove(self, address: str) -> None:
        """Delete an agent and purge it from the index."""
        if not await self._storage.delete_agent(address):
            raise NotFound("agent", address)
        logger.info("Agent %s removed", address, extra={"agent": address})
        await self._track("agent_removed", {"address": address})

    async def set_active(self, address: str, active: bool) -> Agent:
        for _ in range(AGENT_WRITE_ATTEMPTS):
            agent = await self.get(address)
            agent.is_active = active
            if await self._storage.compare_and_set_agent(agent, agent.version):
                agent.version += 1
                break
        else:
            raise _conflict(address)
        await self._track("agent_activity_changed", {"address": address, "active": active})
        return agent

    async def update_reputation(self, address: str, delta: int) -> Agent:
        """Adjust reputation by `delta`, never below zero. Concurrent calls all count."""
        agent = await self._storage.adjust_agent_reputation(address, delta)
        if agent is None:
            raise NotFound("agent", address)
        return agent

    async def is_eligible(self, address: str, task_type: str) -> bool:
        """Active and, if the agent declares task types, supports `task_type`."""
        agent = await self._storage.get_agent(address)
        if agent is None or not agent.is_active:
            return False
        return agent.supports(task_type)

    async def eligible_agents(self, task_type: str) -> list[Agent]:
        """Active agents able to take `task_type`, best reputation first."""
        agents = [
            agent
            for agent in await self.list_agents()
            if agent.is_active and agent.supports(task_type)
        ]
        return sorted(agents, key=lambda agent: agent.reputation, reverse=True)

    # Allowances
    async def set_allowance(
        self, user_id: str, agent_id: str, amount: Decimal | int | str
    ) -> Allowance:
        """Record what `user_id` allows `agent_id` to spend. Last write wins."""
        await self.get(agent_id)
        allowance = Allowance(user_id=user_id, agent_id=agent_id, allowance=to_decimal(amount))
        if allowance.allowance < 0:
            raise ValueError("allowance must be non-negative")
        await self._storage.save_allowance(allowance)
        logger.info(
            "Agent %s registered for user %s with allowance %s",
            agent_id,
            user_id,
            allowance.allowance,
        )
        return allowance

    async def get_allowances(self, user_id: str) -> list[tuple[str, Decimal]]:
        return [
            (allowance.agent_id, allowance.allowance)
            for allowance in await self._storage.get_allowances(user_id)
        ]

    async def has_allowance(self, user_id: str, agent_id: str) -> bool:
        return any(
            allowed.lower() == agent_id.lower()
            for allowed, _ in await self.get_allowances(user_id)
        )

    async def user_agents(self, user_id: str) -> list[tuple[Agent, Decimal]]:
        """Agents a user registered, with allowances; dangling entries skipped."""
        result = []
        for agent_id, amount in await self.get_allowances(user_id):
            agent = await self._storage.get_agent(agent_id)
            if agent is not None:
                result.append((agent, amount))
        return result

    async def _track(self, event_type: str, data: dict) -> None:
        if self._tracker:
            await self._tracker.track(event_type, "agent_directory", data)


def _conflict(address: str) -> Conflict:
    return Conflict(address, f"Agent {address} was modified concurrently")
