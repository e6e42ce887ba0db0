"""Error taxonomy for the task pipeline.

Every error carries a stable ``code`` and the HTTP status the API layer
answers with. Expected outcomes (not found, illegal transition, lost race,
rejected signature or policy) are surfaced to the caller as-is and are never
retried automatically. Collaborator errors may be retried by the caller but
are never read as a validation pass.
"""

from typing import Any


class PipelineError(Exception):
    """Base class for all pipeline errors."""

    code = "pipeline_error"
    status_code = 500

    def __init__(self, message: str, **detail: Any):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, "detail": self.detail}


class NotFound(PipelineError):
    """Unknown task or agent id."""

    code = "not_found"
    status_code = 404

    def __init__(self, kind: str, key: str):
        super().__init__(f"{kind} {key} not found", kind=kind, key=key)
        self.kind = kind
        self.key = key


class InvalidTransition(PipelineError):
    """Operation attempted from a state that does not allow it."""

    code = "invalid_transition"
    status_code = 409

    def __init__(self, task_id: str, current: str, target: str, reason: str = ""):
        message = f"Task {task_id}: cannot move from {current} to {target}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, task_id=task_id, current=current, target=target)
        self.task_id = task_id
        self.current = current
        self.target = target


class Conflict(PipelineError):
    """A conditional write lost against a concurrent writer."""

    code = "conflict"
    status_code = 409

    def __init__(self, task_id: str, message: str | None = None):
        super().__init__(
            message or f"Task {task_id} was modified concurrently", task_id=task_id
        )
        self.task_id = task_id


class SignatureInvalid(PipelineError):
    """Recovered signer does not match the claimed identity."""

    code = "signature_invalid"
    status_code = 422

    def __init__(self, identity: str, task_id: str | None = None):
        super().__init__(
            f"Signature does not match {identity}", identity=identity, task_id=task_id
        )
        self.identity = identity


class ValidationFailed(PipelineError):
    """Policy rejection of a task result."""

    code = "validation_failed"
    status_code = 422

    def __init__(self, task_id: str, reason: str, details: dict | None = None):
        super().__init__(
            f"Task {task_id} failed validation: {reason}",
            task_id=task_id,
            reason=reason,
            details=details or {},
        )
        self.task_id = task_id
        self.reason = reason


class AgentIneligible(PipelineError):
    """Agent is inactive or does not take the task type."""

    code = "agent_ineligible"
    status_code = 422

    def __init__(self, address: str, reason: str):
        super().__init__(f"Agent {address} is not eligible: {reason}", agent=address)
        self.address = address


class CollaboratorUnavailable(PipelineError):
    """I/O failure talking to the store, oracle, content storage or ledger."""

    code = "collaborator_unavailable"
    status_code = 503
    collaborator = "collaborator"

    def __init__(self, message: str, **detail: Any):
        super().__init__(message, collaborator=self.collaborator, **detail)


class StorageUnavailable(CollaboratorUnavailable):
    code = "storage_unavailable"
    collaborator = "content_storage"


class OracleUnavailable(CollaboratorUnavailable):
    code = "oracle_unavailable"
    collaborator = "oracle"


class LedgerUnavailable(CollaboratorUnavailable):
    code = "ledger_unavailable"
    collaborator = "ledger"


class CallbackUnavailable(CollaboratorUnavailable):
    code = "callback_unavailable"
    collaborator = "agent_callback"


class LedgerTxFailed(PipelineError):
    """Transaction submitted but reverted or not confirmed in time."""

    code = "ledger_tx_failed"
    status_code = 502

    def __init__(self, message: str, tx_hash: str | None = None):
        super().__init__(message, tx_hash=tx_hash)
        self.tx_hash = tx_hash
