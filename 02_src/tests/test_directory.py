"""Tests for AgentDirectory."""

from decimal import Decimal

import asyncio

import pytest

from avs.agents import ReputationMatcher
from avs.errors import NotFound
from avs.models import DEFAULT_REPUTATION, Agent


class TestAgentRegistration:
    """Tests for register/get/list/remove."""

    async def test_register_defaults(self, directory):
        agent = await directory.register("0xAA", {"name": "bot"})

        assert agent.is_active is True
        assert agent.reputation == DEFAULT_REPUTATION
        assert (await directory.get("0xaa")).metadata == {"name": "bot"}

    async def test_reregister_is_idempotent_for_index(self, directory):
        """Registering the same address twice yields one listed agent."""
        await directory.register("0xaa", {"name": "v1"})
        await directory.register("0xAA", {"name": "v2"})

        agents = await directory.list_agents()
        assert len(agents) == 1
        assert agents[0].metadata == {"name": "v2"}

    async def test_reregister_keeps_reputation(self, directory):
        await directory.register("0xaa")
        await directory.update_reputation("0xaa", 7)

        agent = await directory.register("0xaa", {"name": "again"})
        assert agent.reputation == DEFAULT_REPUTATION + 7

    async def test_get_unknown_raises(self, directory):
        with pytest.raises(NotFound):
            await directory.get("0xmissing")

    async def test_remove(self, directory):
        await directory.register("0xaa")
        await directory.remove("0xaa")

        assert await directory.list_agents() == []
        with pytest.raises(NotFound):
            await directory.remove("0xaa")

    async def test_list_skips_dangling_index_entries(self, directory, storage):
        """An index entry without a record is skipped, not an error."""
        await directory.register("0xaa")
        await directory.register("0xbb")
        await storage._conn.execute("DELETE FROM agents WHERE address = ?", ("0xaa",))
        await storage._conn.commit()

        agents = await directory.list_agents()
        assert [a.address for a in agents] == ["0xbb"]

    async def test_registration_is_tracked(self, directory, storage):
        await directory.register("0xaa")

        events = await storage.get_trace_events(event_types=["agent_registered"])
        assert events[0].data["address"] == "0xaa"


class TestEligibility:
    """Tests for eligibility and reputation."""

    async def test_inactive_agent_not_eligible(self, directory):
        await directory.register("0xaa", is_active=False)

        assert await directory.is_eligible("0xaa", "price") is False
        assert await directory.eligible_agents("price") == []

    async def test_declared_task_types_respected(self, directory):
        await directory.register("0xaa", {"skillList": ["price"]})

        assert await directory.is_eligible("0xaa", "price") is True
        assert await directory.is_eligible("0xaa", "report") is False

    async def test_undeclared_task_types_take_anything(self, directory):
        await directory.register("0xaa", {"name": "generalist"})
        assert await directory.is_eligible("0xaa", "anything") is True

    async def test_unknown_agent_not_eligible(self, directory):
        assert await directory.is_eligible("0xnobody", "price") is False

    async def test_set_active(self, directory):
        await directory.register("0xaa")
        await directory.set_active("0xaa", False)
        assert await directory.is_eligible("0xaa", "price") is False

    async def test_reputation_never_negative(self, directory):
        await directory.register("0xaa", reputation=1)

        agent = await directory.update_reputation("0xaa", -5)
        assert agent.reputation == 0

    async def test_eligible_agents_by_reputation(self, directory):
        await directory.register("0xlow", reputation=10)
        await directory.register("0xhigh", reputation=90)

        ranked = await directory.eligible_agents("price")
        assert [a.address for a in ranked] == ["0xhigh", "0xlow"]


class TestConcurrentAgentWrites:
    """Agent records are shared by validations, the ledger adapter and the API."""

    async def test_concurrent_reputation_updates_all_count(self, directory):
        await directory.register("0xaa", reputation=100)

        await asyncio.gather(*(directory.update_reputation("0xaa", 1) for _ in range(10)))

        assert (await directory.get("0xaa")).reputation == 110

    async def test_set_active_keeps_concurrent_reputation(self, directory):
        await directory.register("0xaa", reputation=100)

        await asyncio.gather(
            directory.set_active("0xaa", False),
            *(directory.update_reputation("0xaa", 1) for _ in range(5)),
        )

        agent = await directory.get("0xaa")
        assert agent.reputation == 105
        assert agent.is_active is False

    async def test_reregister_keeps_concurrent_reputation(self, directory):
        await directory.register("0xaa", {"name": "v1"}, reputation=100)

        await asyncio.gather(
            directory.register("0xaa", {"name": "v2"}),
            *(directory.update_reputation("0xaa", -1) for _ in range(5)),
        )

        agent = await directory.get("0xaa")
        assert agent.reputation == 95
        assert agent.metadata == {"name": "v2"}

    async def test_update_unknown_agent(self, directory):
        with pytest.raises(NotFound):
            await directory.update_reputation("0xnobody", 1)


class TestAllowances:
    """Tests for user allowances."""

    async def test_set_and_get(self, directory):
        await directory.register("0xAA")
        await directory.set_allowance("user1", "0xAA", "12.5")

        assert await directory.get_allowances("user1") == [("0xaa", Decimal("12.5"))]
        assert await directory.has_allowance("user1", "0xAa") is True
        assert await directory.has_allowance("user2", "0xaa") is False

    async def test_last_write_wins(self, directory):
        await directory.register("0xaa")
        await directory.set_allowance("user1", "0xaa", 10)
        await directory.set_allowance("user1", "0xaa", 3)

        assert await directory.get_allowances("user1") == [("0xaa", Decimal("3"))]

    async def test_unknown_agent_rejected(self, directory):
        with pytest.raises(NotFound):
            await directory.set_allowance("user1", "0xnobody", 1)

    async def test_negative_allowance_rejected(self, directory):
        await directory.register("0xaa")
        with pytest.raises(ValueError):
            await directory.set_allowance("user1", "0xaa", -1)

    async def test_user_agents(self, directory):
        await directory.register("0xaa", {"name": "bot"})
        await directory.set_allowance("user1", "0xaa", 4)

        [(agent, amount)] = await directory.user_agents("user1")
        assert agent.metadata == {"name": "bot"}
        assert amount == Decimal("4")


class TestReputationMatcher:
    async def test_rank_best_first(self):
        candidates = [Agent(address="0x1", reputation=5), Agent(address="0x2", reputation=50)]

        ranked = await ReputationMatcher().rank("price", {}, candidates)
        assert [a.address for a in ranked] == ["0x2", "0x1"]

    async def test_ties_keep_given_order(self):
        candidates = [Agent(address=f"0x{i}", reputation=7) for i in range(3)]

        ranked = await ReputationMatcher().rank("price", {}, candidates)
        assert [a.address for a in ranked] == ["0x0", "0x1", "0x2"]
