"""Agent matching interface.

Choosing the best agent for a task is delegated to an external matcher; the
pipeline only needs a ranked list of candidates.
"""

from typing import Any, Protocol

from ..models import Agent


class IAgentMatcher(Protocol):
    """Ranks candidate agents for a task, best first."""

    async def rank(
        self, task_type: str, task_data: Any, candidates: list[Agent]
    ) -> list[Agent]:
        ...


class ReputationMatcher:
    """Highest reputation first; equal reputations keep the order given."""

    async def rank(
        self, task_type: str, task_data: Any, candidates: list[Agent]
    ) -> list[Agent]:
        return sorted(candidates, key=lambda agent: agent.reputation, reverse=True)
