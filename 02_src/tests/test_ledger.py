"""Tests for ledger event handling."""

import asyncio

import pytest

from avs.errors import LedgerUnavailable
from avs.ledger import (
    CONTRACT_ABI,
    LedgerAgent,
    LedgerEvent,
    LedgerEventAdapter,
    LedgerEventListener,
    LedgerTask,
    Web3Ledger,
)
from avs.ledger.client import _normalise, decode_bytes32
from avs.models import Topic, TaskStatus


@pytest.fixture
async def adapter(event_bus, registry, directory, content_store, ledger):
    adapter = LedgerEventAdapter(event_bus, registry, directory, content_store, ledger=ledger)
    await adapter.start()
    yield adapter
    await adapter.stop()


class TestContractEncoding:
    """Tests for the contract ABI helpers."""

    def test_abi_covers_events_and_calls(self):
        names = {(entry["type"], entry["name"]) for entry in CONTRACT_ABI}
        assert ("event", "TaskCompleted") in names
        assert ("function", "completeTask") in names
        assert ("function", "registerAgentForOtherUser") in names

    def test_decode_bytes32(self):
        assert decode_bytes32(b"price" + b"\x00" * 27) == "price"

    def test_normalise_task_created(self):
        payload = _normalise(
            "TaskCreated", {"taskId": 3, "creator": "0xc", "taskType": b"price".ljust(32, b"\x00")}
        )
        assert payload == {"taskId": 3, "creator": "0xc", "taskType": "price"}

    def test_normalise_task_completed(self):
        payload = _normalise("TaskCompleted", {"taskId": 3, "signature": b"\x01\x02"})
        assert payload == {"taskId": 3, "signature": "0x0102"}

    async def test_write_without_key_is_unavailable(self):
        ledger = Web3Ledger("http://127.0.0.1:8545", "0x" + "11" * 20)
        with pytest.raises(LedgerUnavailable):
            await ledger.assign_task(1)


class TestAdapterAgents:
    """Tests for AgentRegistered events."""

    async def test_agent_registered_fetches_metadata(self, event_bus, adapter, directory, content_store, ledger):
        ref = await content_store.store({"name": "bot", "skillList": ["price"]})
        ledger.agents["0xaa"] = LedgerAgent("0xAA", ref, True, 42)

        await event_bus.emit(Topic.AGENT_REGISTERED, {"address": "0xAA", "metadataRef": ref}, "ledger")

        agent = await directory.get("0xaa")
        assert agent.metadata["name"] == "bot"
        assert agent.metadata["metadataRef"] == ref
        assert agent.reputation == 42

    async def test_metadata_outage_skips_agent(self, event_bus, adapter, directory):
        await event_bus.emit(
            Topic.AGENT_REGISTERED, {"address": "0xaa", "metadataRef": "sha256-missing"}, "ledger"
        )
        assert await directory.list_agents() == []

    async def test_duplicate_event_is_idempotent(self, event_bus, adapter, directory, content_store):
        ref = await content_store.store({"name": "bot"})
        payload = {"address": "0xaa", "metadataRef": ref}

        await event_bus.emit(Topic.AGENT_REGISTERED, payload, "ledger")
        await event_bus.emit(Topic.AGENT_REGISTERED, payload, "ledger")

        assert len(await directory.list_agents()) == 1


class TestAdapterTasks:
    """Tests for task events."""

    async def test_task_created_reads_ledger(self, event_bus, adapter, registry, ledger):
        ledger.tasks[5] = LedgerTask(5, "0xc", None, "price", '{"symbol":"ETHUSDT"}', 3, 0, None)

        await event_bus.emit(Topic.TASK_CREATED, {"taskId": 5, "creator": "0xc", "taskType": "price"}, "ledger")

        task = await registry.get("5")
        assert task.ledger_id == 5
        assert task.task_data == '{"symbol":"ETHUSDT"}'
        assert task.payment == 3

    async def test_duplicate_task_created_ignored(self, event_bus, adapter, registry):
        payload = {"taskId": 5, "creator": "0xc", "taskType": "price"}
        await event_bus.emit(Topic.TASK_CREATED, payload, "ledger")
        await event_bus.emit(Topic.TASK_CREATED, payload, "ledger")

        assert [t.id for t in await registry.list_tasks()] == ["5"]

    async def test_assigned_then_completed(self, event_bus, adapter, registry):
        await event_bus.emit(Topic.TASK_CREATED, {"taskId": 5, "creator": "0xc", "taskType": "price"}, "ledger")
        await event_bus.emit(Topic.TASK_ASSIGNED, {"taskId": 5, "agent": "0xaa"}, "ledger")
        await event_bus.emit(Topic.TASK_COMPLETED, {"taskId": 5, "signature": "0xabcd"}, "ledger")

        task = await registry.get("5")
        assert task.status == TaskStatus.COMPLETED
        assert task.assigned_agent == "0xaa"
        assert task.signature == "0xabcd"

    async def test_event_after_api_transition_is_noop(self, event_bus, adapter, registry):
        """The API already did what the event reports: no error, no extra write."""
        task = await registry.create("0xc", "price", None, ledger_id=5)
        await registry.assign(task.id, "0xAA")
        before = await registry.get(task.id)

        await event_bus.emit(Topic.TASK_ASSIGNED, {"taskId": 5, "agent": "0xaa"}, "ledger")

        after = await registry.get(task.id)
        assert after.version == before.version
        assert after.last_error is None

    async def test_conflict_with_other_writer_resolved_by_reread(self, adapter, registry, storage):
        """A lost race against an unrelated write is retried after re-reading."""
        task = await registry.create("0xc", "price", None, ledger_id=5)
        original = storage.compare_and_set_task
        calls = []

        async def lose_first(task_obj, expected_status, expected_version):
            calls.append(expected_version)
            if len(calls) == 1:
                await registry.note_agent_response(task.id, {"hello": 1})
            return await original(task_obj, expected_status, expected_version)

        storage.compare_and_set_task = lose_first
        try:
            await adapter._apply(
                task.id,
                "assign",
                lambda: registry.assign(task.id, "0xaa"),
                lambda t: t.status == TaskStatus.ASSIGNED,
            )
        finally:
            storage.compare_and_set_task = original

        stored = await registry.get(task.id)
        assert stored.status == TaskStatus.ASSIGNED
        assert stored.agent_response == {"hello": 1}

    async def test_event_for_unknown_task_ignored(self, event_bus, adapter, registry):
        await event_bus.emit(Topic.TASK_ASSIGNED, {"taskId": 99, "agent": "0xaa"}, "ledger")
        assert await registry.list_tasks() == []


class TestListener:
    """Tests for the polling listener."""

    async def test_poll_publishes_in_order(self, event_bus, ledger, storage):
        ledger.events = [
            LedgerEvent(Topic.TASK_CREATED, {"taskId": 1, "creator": "0xc", "taskType": "x"}, 11, 0),
            LedgerEvent(Topic.TASK_ASSIGNED, {"taskId": 1, "agent": "0xaa"}, 11, 1),
        ]
        ledger.head = 11
        received = []

        async def handler(message):
            received.append(message.topic)

        event_bus.subscribe(Topic.TASK_CREATED, handler)
        event_bus.subscribe(Topic.TASK_ASSIGNED, handler)
        listener = LedgerEventListener(ledger, event_bus, poll_interval=0.01, start_block=0)

        assert await listener.poll_once() == 2
        assert received == [Topic.TASK_CREATED, Topic.TASK_ASSIGNED]
        assert listener.next_block == 12
        assert await listener.poll_once() == 0

    async def test_defaults_to_current_head(self, event_bus, ledger):
        ledger.events = [LedgerEvent(Topic.TASK_CREATED, {"taskId": 1}, 3, 0)]
        listener = LedgerEventListener(ledger, event_bus)

        assert await listener.poll_once() == 0
        assert listener.next_block == ledger.head + 1

    async def test_background_loop_survives_outage(self, event_bus, ledger):
        ledger.fail_with = LedgerUnavailable("down")
        listener = LedgerEventListener(ledger, event_bus, poll_interval=0.01, start_block=0)

        await listener.start()
        await asyncio.sleep(0.05)
        assert listener.running is True
        await listener.stop()
        assert listener.running is False

    async def test_background_loop_survives_unexpected_error(self, event_bus, ledger):
        ledger.events = [LedgerEvent(Topic.TASK_CREATED, {"taskId": 1}, 11, 0)]
        ledger.head = 11
        fetch_events = ledger.fetch_events
        calls = []

        async def flaky(from_block):
            calls.append(from_block)
            if len(calls) == 1:
                raise RuntimeError("undecodable log")
            return await fetch_events(from_block)

        ledger.fetch_events = flaky
        received = []

        async def handler(message):
            received.append(message.payload["taskId"])

        event_bus.subscribe(Topic.TASK_CREATED, handler)
        listener = LedgerEventListener(ledger, event_bus, poll_interval=0.01, start_block=0)

        await listener.start()
        for _ in range(100):
            if received:
                break
            await asyncio.sleep(0.01)
        assert listener.running is True
        await listener.stop()

        assert received == [1]
        assert calls[:2] == [0, 0]
