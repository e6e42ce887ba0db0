"""Applies normalised ledger events to agent and task records."""

from typing import Awaitable, Callable

from ..agents import AgentDirectory
from ..collaborators import IContentStore
from ..errors import (
    CollaboratorUnavailable,
    Conflict,
    InvalidTransition,
    NotFound,
    PipelineError,
)
from ..event_bus import IEventBus
from ..logging_config import get_logger
from ..models import BusMessage, Task, TaskStatus, Topic
from ..tasks.registry import TaskRegistry
from .client import ILedger

logger = get_logger(__name__)


class LedgerEventAdapter:
    """Bus subscriber turning ledger events into registry/directory writes.

    Event delivery is at-least-once and may race with API calls doing the
    same transition. A lost race is resolved by re-reading the task: if the
    event's effect is already there the event is a no-op, otherwise the
    transition is attempted once more.
    """

    def __init__(
        self,
        event_bus: IEventBus,
        registry: TaskRegistry,
        directory: AgentDirectory,
        content_store: IContentStore,
        ledger: ILedger | None = None,
    ):
        self._event_bus = event_bus
        self._registry = registry
        self._directory = directory
        self._content_store = content_store
        self._ledger = ledger
        self._handlers = {
            Topic.AGENT_REGISTERED: self._on_agent_registered,
            Topic.TASK_CREATED: self._on_task_created,
            Topic.TASK_ASSIGNED: self._on_task_assigned,
            Topic.TASK_COMPLETED: self._on_task_completed,
        }

    async def start(self) -> None:
        for topic, handler in self._handlers.items():
            self._event_bus.subscribe(topic, handler)

    async def stop(self) -> None:
        for topic, handler in self._handlers.items():
            self._event_bus.unsubscribe(topic, handler)

    async def _on_agent_registered(self, message: BusMessage) -> None:
        address = message.payload["address"]
        ref = message.payload.get("metadataRef")
        metadata: dict = {}
        if ref:
            try:
                fetched = await self._content_store.fetch(ref)
            except CollaboratorUnavailable as e:
                logger.error(
                    "Skipping agent %s: metadata %s unavailable: %s", address, ref, e.message,
                    extra={"agent": address},
                )
                return
            metadata = fetched if isinstance(fetched, dict) else {"raw": fetched}
            metadata.setdefault("metadataRef", ref)

        reputation = None
        is_active = True
        if self._ledger is not None:
            try:
                on_chain = await self._ledger.get_agent(address)
            except CollaboratorUnavailable as e:
                logger.warning("Agent %s not readable on ledger: %s", address, e.message)
                on_chain = None
            if on_chain is not None:
                reputation = on_chain.reputation
                is_active = on_chain.is_active

        await self._directory.register(
            address, metadata, is_active=is_active, reputation=reputation
        )

    async def _on_task_created(self, message: BusMessage) -> None:
        payload = message.payload
        ledger_id = int(payload["taskId"])
        creator = payload.get("creator", "")
        task_type = payload.get("taskType", "")
        task_data = payload.get("taskData")
        payment = payload.get("payment", 0)

        if self._ledger is not None and task_data is None:
            try:
                on_chain = await self._ledger.get_task(ledger_id)
            except CollaboratorUnavailable as e:
                logger.warning("Task %s not readable on ledger: %s", ledger_id, e.message)
                on_chain = None
            if on_chain is not None:
                creator = on_chain.creator
                task_type = on_chain.task_type or task_type
                task_data = on_chain.task_data
                payment = on_chain.payment

        try:
            await self._registry.create(
                creator, task_type, task_data, payment, ledger_id=ledger_id
            )
        except Conflict:
            logger.debug("Task %s already known", ledger_id, extra={"task_id": str(ledger_id)})

    async def _on_task_assigned(self, message: BusMessage) -> None:
        task_id = str(message.payload["taskId"])
        agent = message.payload["agent"]

        def applied(task: Task) -> bool:
            return task.status != TaskStatus.CREATED and _same(task.assigned_agent, agent)

        await self._apply(
            task_id, "assign", lambda: self._registry.assign(task_id, agent), applied
        )

    async def _on_task_completed(self, message: BusMessage) -> None:
        task_id = str(message.payload["taskId"])
        signature = message.payload["signature"]
        result_ref = message.payload.get("resultRef")

        def applied(task: Task) -> bool:
            return task.signature is not None and task.signature.lower() == signature.lower()

        await self._apply(
            task_id,
            "record_result",
            lambda: self._registry.record_result(task_id, signature, result_ref=result_ref),
            applied,
        )

    async def _apply(
        self,
        task_id: str,
        operation: str,
        run: Callable[[], Awaitable[Task]],
        applied: Callable[[Task], bool],
    ) -> None:
        for attempt in range(2):
            try:
                await run()
                return
            except NotFound:
                logger.warning(
                    "Ledger event %s for unknown task %s", operation, task_id,
                    extra={"task_id": task_id},
                )
                return
            except (Conflict, InvalidTransition) as e:
                task = await self._registry.get(task_id)
                if applied(task):
                    logger.debug(
                        "Ledger event %s already applied to task %s", operation, task_id,
                        extra={"task_id": task_id},
                    )
                    return
                if isinstance(e, InvalidTransition) or attempt:
                    logger.warning(
                        "Ledger event %s not applicable to task %s: %s",
                        operation, task_id, e.message,
                        extra={"task_id": task_id, "status": task.status.value},
                    )
                    return
            except PipelineError as e:
                logger.error(
                    "Ledger event %s failed for task %s: %s", operation, task_id, e.message,
                    extra={"task_id": task_id},
                )
                return


def _same(left: str | None, right: str | None) -> bool:
    return bool(left and right) and left.lower() == right.lower()
