"""Drives a completed task through signature and policy validation."""

import json
from typing import Any

from ..agents import IAgentDirectory
from ..collaborators import IContentStore, is_content_ref
from ..errors import (
    CollaboratorUnavailable,
    InvalidTransition,
    NotFound,
    SignatureInvalid,
    ValidationFailed,
)
from ..logging_config import get_logger
from ..models import Agent, Task, TaskStatus, ValidationResult, parse_task_result
from ..signature import ISignatureVerifier, result_message
from ..tasks import TaskRegistry
from .policy import AGENT_INACTIVE, SIGNATURE_INVALID, ValidationPolicy

logger = get_logger(__name__)


class ValidationService:
    """Validates task results and records the outcome on the task."""

    def __init__(
        self,
        registry: TaskRegistry,
        directory: IAgentDirectory,
        verifier: ISignatureVerifier,
        policy: ValidationPolicy,
        content_store: IContentStore,
    ):
        self._registry = registry
        self._directory = directory
        self._verifier = verifier
        self._policy = policy
        self._content_store = content_store

    async def resolve_result(self, task: Task) -> Any:
        """The result payload: inline, then stored by reference, then the task data.

        Task data that is a content reference is fetched; a JSON document
        carried as a string is decoded.
        """
        if task.result is not None:
            return task.result
        if task.result_ref:
            return await self._content_store.fetch(task.result_ref)
        data = task.task_data
        if is_content_ref(data):
            return await self._content_store.fetch(data)
        if isinstance(data, str) and data.lstrip()[:1] in ("{", "["):
            try:
                return json.loads(data)
            except ValueError:
                return data
        return data

    async def validate(self, task_id: str) -> Task:
        """Validate a completed task.

        Raises SignatureInvalid or ValidationFailed after recording
        `validation_failed` on the task. Collaborator outages are noted on the
        task, which stays `completed`, and re-raised.
        """
        task = await self._registry.get(task_id)
        if task.status != TaskStatus.COMPLETED:
            raise InvalidTransition(task.id, task.status.value, TaskStatus.VALIDATED.value)

        try:
            payload = await self.resolve_result(task)
        except CollaboratorUnavailable as e:
            await self._registry.note_error(task.id, e.code, e.message)
            raise

        claimed = task.assigned_agent or ""
        message = result_message(task.id, payload)
        if not self._verifier.verify(claimed, message, task.signature or ""):
            await self._registry.apply_validation(
                task.id,
                ValidationResult(
                    is_valid=False, details={"reason": SIGNATURE_INVALID, "agent": claimed}
                ),
                result=payload,
            )
            raise SignatureInvalid(claimed, task_id=task.id)

        agent = await self._find_agent(claimed)
        try:
            validation = await self._policy.evaluate(task, agent, parse_task_result(payload))
        except CollaboratorUnavailable as e:
            await self._registry.note_error(task.id, e.code, e.message)
            raise

        task = await self._registry.apply_validation(task.id, validation, result=payload)
        await self._update_reputation(agent, validation)

        if not validation.is_valid:
            logger.info(
                "Task %s rejected: %s", task.id, validation.reason,
                extra={"task_id": task.id, "agent": claimed},
            )
            raise ValidationFailed(task.id, validation.reason or "rejected", validation.details)

        logger.info("Task %s validated", task.id, extra={"task_id": task.id, "agent": claimed})
        return task

    async def _find_agent(self, address: str) -> Agent | None:
        if not address:
            return None
        try:
            return await self._directory.get(address)
        except NotFound:
            return None

    async def _update_reputation(self, agent: Agent | None, validation: ValidationResult) -> None:
        if agent is None or validation.reason == AGENT_INACTIVE:
            return
        delta = 1 if validation.is_valid else -1
        try:
            await self._directory.update_reputation(agent.address, delta)
        except NotFound:
            logger.warning("Agent %s vanished before reputation update", agent.address)
