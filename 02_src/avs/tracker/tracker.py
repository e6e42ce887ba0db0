"""Audit trail of ledger events and pipeline decisions."""

import uuid
from datetime import datetime, timezone
from typing import Protocol

from ..event_bus import IEventBus
from ..logging_config import get_logger
from ..models import BusMessage, Topic, TraceEvent
from ..storage import IStorage

logger = get_logger(__name__)

LEDGER_EVENT = "ledger_event_received"
TASK_TRANSITION = "task_transition"


class ITracker(Protocol):
    """Records TraceEvents from bus traffic and from direct calls."""

    async def track(self, event_type: str, actor: str, data: dict) -> None:
        ...


class Tracker:
    """Persists a TraceEvent per ledger event and per tracked pipeline step."""

    def __init__(self, event_bus: IEventBus, storage: IStorage):
        self._event_bus = event_bus
        self._storage = storage

    async def start(self) -> None:
        for topic in Topic:
            self._event_bus.subscribe(topic, self._on_ledger_event)

    async def stop(self) -> None:
        for topic in Topic:
            self._event_bus.unsubscribe(topic, self._on_ledger_event)

    async def _on_ledger_event(self, message: BusMessage) -> None:
        data = {"topic": message.topic.value, "source": message.source}
        task_id = message.payload.get("taskId")
        if task_id is not None:
            data["task_id"] = str(task_id)
        if "blockNumber" in message.payload:
            data["block_number"] = message.payload["blockNumber"]
        data["payload_summary"] = str(message.payload)[:100]
        await self.track(LEDGER_EVENT, "event_bus", data)

    async def track(self, event_type: str, actor: str, data: dict) -> None:
        await self._storage.save_trace_event(
            TraceEvent(
                id=str(uuid.uuid4()),
                event_type=event_type,
                actor=actor,
                data=data,
                timestamp=datetime.now(timezone.utc),
            )
        )

    async def task_history(self, task_id: str, limit: int = 1000) -> list[TraceEvent]:
        """Transitions and ledger events of one task, oldest first."""
        events = await self._storage.get_trace_events(
            event_types=[TASK_TRANSITION, LEDGER_EVENT], limit=limit, task_id=task_id
        )
        return events[::-1]
