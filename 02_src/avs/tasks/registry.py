"""Task registry: the single owner of task records.

Every operation reads the task, checks the transition against the status
graph and writes back with a compare-and-set keyed on the status and version
it read. Of two writers racing for the same transition exactly one wins; the
other gets ``Conflict`` and must re-read before deciding what to do.
"""

import uuid
from decimal import Decimal
from typing import Any, Callable, Iterable

from ..errors import Conflict, InvalidTransition, NotFound
from ..logging_config import get_logger
from ..models import Proof, Task, TaskStatus, ValidationResult, utcnow
from ..models.common import to_decimal, to_iso
from ..storage import IStorage
from ..tracker import TASK_TRANSITION, ITracker
from .state_machine import FAILURE_STATES, RETRY_EDGES, can_transition

logger = get_logger(__name__)

# Same-status annotations are retried this many times on a lost race.
ANNOTATION_ATTEMPTS = 3


class TaskRegistry:
    """Create, read and transition tasks."""

    def __init__(self, storage: IStorage, tracker: ITracker | None = None):
        self._storage = storage
        self._tracker = tracker

    # Reads
    async def get(self, task_id: str) -> Task:
        """Get a task. Raises NotFound."""
        task = await self._storage.get_task(str(task_id))
        if task is None:
            raise NotFound("task", str(task_id))
        return task

    async def list_tasks(self) -> list[Task]:
        """All indexed tasks; ids without a record are skipped."""
        tasks = []
        for task_id in await self._storage.list_task_ids():
            task = await self._storage.get_task(task_id)
            if task is not None:
                tasks.append(task)
        return tasks

    # Creation
    async def create(
        self,
        creator: str,
        task_type: str,
        task_data: Any,
        payment: Decimal | int | str = 0,
        *,
        task_id: str | None = None,
        ledger_id: int | None = None,
    ) -> Task:
        """Create a task in `created` status and add it to the task index."""
        amount = to_decimal(payment)
        if amount < 0:
            raise ValueError("payment must be non-negative")

        if task_id is None:
            task_id = str(ledger_id) if ledger_id is not None else uuid.uuid4().hex

        task = Task(
            id=task_id,
            ledger_id=ledger_id,
            creator=creator,
            task_type=task_type,
            task_data=task_data,
            payment=amount,
        )
        if not await self._storage.insert_task(task):
            raise Conflict(task_id, f"Task {task_id} already exists")

        logger.info(
            "Task %s created by %s (%s)", task_id, creator, task_type,
            extra={"task_id": task_id, "status": task.status.value},
        )
        await self._track(task, None, task.status)
        return task

    # Transitions
    async def assign(self, task_id: str, agent: str) -> Task:
        """Assign a freshly created task to an agent."""

        def mutate(task: Task) -> None:
            task.assigned_agent = agent

        return await self._transition(
            task_id, TaskStatus.ASSIGNED, allowed_from={TaskStatus.CREATED}, mutate=mutate
        )

    async def submit(self, task_id: str, agent: str) -> Task:
        """Dispatch a created task as an AVS job to `agent`."""

        def mutate(task: Task) -> None:
            task.assigned_agent = agent

        return await self._transition(
            task_id, TaskStatus.SUBMITTED, allowed_from={TaskStatus.CREATED}, mutate=mutate
        )

    async def reassign(self, task_id: str, agent: str) -> Task:
        """Explicitly hand an in-flight task to a different agent."""

        def mutate(task: Task) -> None:
            task.history.append(
                {
                    "event": "reassigned",
                    "from": task.assigned_agent,
                    "to": agent,
                    "at": to_iso(utcnow()),
                }
            )
            task.assigned_agent = agent

        return await self._transition(
            task_id,
            TaskStatus.ASSIGNED,
            allowed_from={TaskStatus.ASSIGNED, TaskStatus.SUBMITTED},
            mutate=mutate,
        )

    async def record_result(
        self,
        task_id: str,
        signature: str,
        result_ref: str | None = None,
        result: Any = None,
    ) -> Task:
        """Store the agent's signed result and mark the task completed."""

        def mutate(task: Task) -> None:
            task.signature = signature
            task.result_ref = result_ref
            task.result = result

        return await self._transition(
            task_id,
            TaskStatus.COMPLETED,
            allowed_from={TaskStatus.ASSIGNED, TaskStatus.SUBMITTED},
            mutate=mutate,
        )

    async def apply_validation(
        self, task_id: str, validation: ValidationResult, result: Any = None
    ) -> Task:
        """Attach a validation outcome.

        Passing results require a completed task. A rejection may also be
        recorded before completion (e.g. a result whose signature was refused).
        """
        if validation.is_valid:
            target = TaskStatus.VALIDATED
            allowed = {TaskStatus.COMPLETED}
        else:
            target = TaskStatus.VALIDATION_FAILED
            allowed = {TaskStatus.COMPLETED, TaskStatus.ASSIGNED, TaskStatus.SUBMITTED}

        def mutate(task: Task) -> None:
            task.validation = validation
            if result is not None:
                task.result = result

        return await self._transition(task_id, target, allowed_from=allowed, mutate=mutate)

    async def apply_proof(self, task_id: str, proof: Proof) -> Task:
        def mutate(task: Task) -> None:
            task.proof = proof

        return await self._transition(
            task_id,
            TaskStatus.PROOF_GENERATED,
            allowed_from={TaskStatus.VALIDATED},
            mutate=mutate,
        )

    async def mark_proof_verified(self, task_id: str) -> Task:
        return await self._transition(
            task_id, TaskStatus.PROOF_VERIFIED, allowed_from={TaskStatus.PROOF_GENERATED}
        )

    async def mark_proof_failed(self, task_id: str, reason: str) -> Task:
        def mutate(task: Task) -> None:
            task.last_error = _error_record("proof_verification_failed", reason)

        return await self._transition(
            task_id,
            TaskStatus.PROOF_VERIFICATION_FAILED,
            allowed_from={TaskStatus.PROOF_GENERATED},
            mutate=mutate,
        )

    async def mark_finalized(
        self, task_id: str, tx_hash: str, block_number: int | None = None
    ) -> Task:
        def mutate(task: Task) -> None:
            task.finalization = {"tx_hash": tx_hash, "block_number": block_number}

        return await self._transition(
            task_id,
            TaskStatus.FINALIZED,
            allowed_from={TaskStatus.PROOF_VERIFIED},
            mutate=mutate,
        )

    async def retry(self, task_id: str, *, resubmit: bool = False) -> Task:
        """Start a new validation attempt for a failed task.

        The previous validation and proof are archived in `history`. The task
        goes back to `completed` to re-validate the stored result, or to
        `assigned` when the agent has to resubmit (or never submitted).
        """
        task = await self.get(task_id)
        if task.status not in FAILURE_STATES:
            raise InvalidTransition(
                task.id, task.status.value, "retry", "task is not in a failure state"
            )
        resubmit = resubmit or task.signature is None
        target = TaskStatus.ASSIGNED if resubmit else TaskStatus.COMPLETED

        def mutate(task: Task) -> None:
            task.history.append(
                {
                    "event": "retry",
                    "attempt": task.attempt,
                    "status": task.status.value,
                    "validation": task.validation.to_dict() if task.validation else None,
                    "proof": task.proof.to_dict() if task.proof else None,
                    "last_error": task.last_error,
                    "at": to_iso(utcnow()),
                }
            )
            task.attempt += 1
            task.validation = None
            task.proof = None
            if resubmit:
                task.signature = None
                task.result = None
                task.result_ref = None

        return await self._transition(task_id, target, mutate=mutate, retry=True, task=task)

    # Same-status annotations
    async def note_error(self, task_id: str, code: str, message: str) -> Task:
        """Record a failed attempt without moving the task."""

        def mutate(task: Task) -> None:
            task.last_error = _error_record(code, message)

        logger.warning(
            "Task %s: %s (%s)", task_id, message, code, extra={"task_id": task_id}
        )
        return await self._annotate(task_id, mutate)

    async def note_agent_response(self, task_id: str, response: Any) -> Task:
        def mutate(task: Task) -> None:
            task.agent_response = response

        return await self._annotate(task_id, mutate)

    # Internals
    async def _transition(
        self,
        task_id: str,
        target: TaskStatus,
        *,
        allowed_from: Iterable[TaskStatus] | None = None,
        mutate: Callable[[Task], None] | None = None,
        retry: bool = False,
        task: Task | None = None,
    ) -> Task:
        if task is None:
            task = await self.get(task_id)
        current = task.status
        expected_version = task.version

        if allowed_from is not None and current not in allowed_from:
            raise InvalidTransition(task.id, current.value, target.value)
        if not can_transition(current, target):
            raise InvalidTransition(task.id, current.value, target.value)
        if (current, target) in RETRY_EDGES and not retry:
            raise InvalidTransition(
                task.id, current.value, target.value, "failed tasks need an explicit retry"
            )

        task.last_error = None
        if mutate:
            mutate(task)
        task.status = target
        task.last_updated = utcnow()

        await self._write(task, current, expected_version)

        logger.info(
            "Task %s: %s -> %s", task.id, current.value, target.value,
            extra={"task_id": task.id, "status": target.value},
        )
        await self._track(task, current, target)
        return task

    async def _annotate(self, task_id: str, mutate: Callable[[Task], None]) -> Task:
        for _ in range(ANNOTATION_ATTEMPTS):
            task = await self.get(task_id)
            expected_version = task.version
            mutate(task)
            task.last_updated = utcnow()
            try:
                await self._write(task, task.status, expected_version)
                return task
            except Conflict:
                continue
        raise Conflict(task_id)

    async def _write(
        self, task: Task, expected_status: TaskStatus, expected_version: int
    ) -> None:
        ok = await self._storage.compare_and_set_task(
            task, expected_status.value, expected_version
        )
        if not ok:
            raise Conflict(task.id)
        task.version = expected_version + 1

    async def _track(
        self, task: Task, source: TaskStatus | None, target: TaskStatus
    ) -> None:
        if not self._tracker:
            return
        await self._tracker.track(
            TASK_TRANSITION,
            "task_registry",
            {
                "task_id": task.id,
                "from": source.value if source else None,
                "to": target.value,
                "version": task.version,
                "attempt": task.attempt,
            },
        )


def _error_record(code: str, message: str) -> dict:
    return {"code": code, "message": message, "timestamp": to_iso(utcnow())}
