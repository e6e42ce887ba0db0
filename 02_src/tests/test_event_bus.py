"""Tests for EventBus and Tracker."""

from datetime import datetime, timezone

from avs.models import BusMessage, Topic


def _message(topic=Topic.TASK_CREATED, payload=None):
    return BusMessage(
        id="bus1",
        topic=topic,
        payload=payload or {"taskId": 1},
        source="ledger",
        timestamp=datetime.now(timezone.utc),
    )


class TestEventBusPublish:
    """Tests for EventBus publishing."""

    async def test_publish_reaches_topic_subscribers_only(self, event_bus):
        created, assigned = [], []

        async def on_created(msg: BusMessage):
            created.append(msg)

        async def on_assigned(msg: BusMessage):
            assigned.append(msg)

        event_bus.subscribe(Topic.TASK_CREATED, on_created)
        event_bus.subscribe(Topic.TASK_ASSIGNED, on_assigned)

        await event_bus.publish(_message())

        assert len(created) == 1
        assert assigned == []

    async def test_publish_persists_message(self, event_bus, storage):
        await event_bus.publish(_message())

        messages = await storage.get_bus_messages()
        assert messages[0].id == "bus1"
        assert messages[0].payload == {"taskId": 1}

    async def test_failing_handler_does_not_block_others(self, event_bus, storage):
        """A handler error is logged; the other handlers still run."""
        calls = []

        async def broken(msg: BusMessage):
            raise RuntimeError("boom")

        async def healthy(msg: BusMessage):
            calls.append(msg)

        event_bus.subscribe(Topic.TASK_CREATED, broken)
        event_bus.subscribe(Topic.TASK_CREATED, healthy)

        await event_bus.publish(_message())

        assert len(calls) == 1
        assert len(await storage.get_bus_messages()) == 1

    async def test_unsubscribe(self, event_bus):
        calls = []

        async def handler(msg: BusMessage):
            calls.append(msg)

        event_bus.subscribe(Topic.TASK_CREATED, handler)
        event_bus.unsubscribe(Topic.TASK_CREATED, handler)
        event_bus.unsubscribe(Topic.TASK_CREATED, handler)

        await event_bus.publish(_message())
        assert calls == []

    async def test_emit_builds_message(self, event_bus):
        message = await event_bus.emit(Topic.TASK_COMPLETED, {"taskId": 2}, "ledger")

        assert message.id
        assert message.topic == Topic.TASK_COMPLETED
        assert message.source == "ledger"


class TestTracker:
    """Tests for Tracker."""

    async def test_track_creates_event(self, tracker, storage):
        await tracker.track(event_type="test_event", actor="test_actor", data={"key": "value"})

        events = await storage.get_trace_events()
        assert len(events) == 1
        assert events[0].event_type == "test_event"
        assert events[0].data == {"key": "value"}

    async def test_bus_messages_are_traced_after_start(self, tracker, event_bus, storage):
        await tracker.start()
        await event_bus.emit(Topic.AGENT_REGISTERED, {"address": "0xaa"}, "ledger")

        events = await storage.get_trace_events(event_types=["ledger_event_received"])
        assert events[0].data["topic"] == "agent_registered"
        assert events[0].actor == "event_bus"

    async def test_stop_unsubscribes(self, tracker, event_bus, storage):
        await tracker.start()
        await tracker.stop()
        await event_bus.emit(Topic.AGENT_REGISTERED, {"address": "0xaa"}, "ledger")

        assert await storage.get_trace_events() == []

    async def test_task_history_filters_by_task(self, tracker, registry, event_bus):
        await tracker.start()
        first = await registry.create("0xc", "price", None)
        await registry.create("0xc", "price", None)
        await event_bus.emit(Topic.TASK_ASSIGNED, {"taskId": first.id, "agent": "0xaa"}, "ledger")

        history = await tracker.task_history(first.id)

        assert [e.event_type for e in history] == ["task_transition", "ledger_event_received"]
        assert history[0].data["to"] == "created"
        assert history[1].data["topic"] == "task_assigned"
