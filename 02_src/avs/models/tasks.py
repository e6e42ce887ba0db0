"""Task-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Union

from .attestation import Proof
from .common import from_iso, to_decimal, to_iso, utcnow


class TaskStatus(str, Enum):
    """Task lifecycle states."""

    CREATED = "created"
    SUBMITTED = "submitted"  # dispatched as an AVS job instead of on-chain assignment
    ASSIGNED = "assigned"
    COMPLETED = "completed"
    VALIDATED = "validated"
    VALIDATION_FAILED = "validation_failed"
    PROOF_GENERATED = "proof_generated"
    PROOF_VERIFIED = "proof_verified"
    PROOF_VERIFICATION_FAILED = "proof_verification_failed"
    FINALIZED = "finalized"


@dataclass(frozen=True)
class PriceResult:
    """A price observation reported by an agent.

    `price` is None when the reported value is not a finite number; such a
    result never passes validation.
    """

    symbol: str
    price: Decimal | None
    reported: Any = field(default=None, compare=False)

    kind = "price"


@dataclass(frozen=True)
class GenericResult:
    """Any other task outcome; validated structurally only."""

    payload: Any

    kind = "generic"


TaskResult = Union[PriceResult, GenericResult]


def parse_task_result(payload: Any) -> TaskResult:
    """Tag a raw result payload."""
    if isinstance(payload, dict):
        if payload.get("symbol") and "price" in payload:
            return PriceResult(
                symbol=str(payload["symbol"]),
                price=_finite_price(payload["price"]),
                reported=payload["price"],
            )
        if "taskResult" in payload:
            return GenericResult(payload["taskResult"])
    return GenericResult(payload)


def _finite_price(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        price = to_decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return None
    return price if price.is_finite() else None


@dataclass
class ValidationResult:
    """Outcome of the validation policy for one attempt."""

    is_valid: bool
    details: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def reason(self) -> str | None:
        return self.details.get("reason")

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "details": self.details,
            "timestamp": to_iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ValidationResult":
        return cls(
            is_valid=bool(data["is_valid"]),
            details=data.get("details") or {},
            timestamp=from_iso(data.get("timestamp")) or utcnow(),
        )


@dataclass
class Task:
    """A unit of work issued to an agent.

    Ids are always strings. Ledger-originated tasks use ``str(ledger_id)``;
    tasks created through the API use a uuid4 hex id and have no ledger_id.
    """

    id: str
    creator: str
    task_type: str
    task_data: Any  # inline payload or content reference
    payment: Decimal = Decimal(0)
    status: TaskStatus = TaskStatus.CREATED
    ledger_id: int | None = None
    assigned_agent: str | None = None
    signature: str | None = None  # agent's signature over the result
    result: Any = None
    result_ref: str | None = None
    validation: ValidationResult | None = None
    proof: Proof | None = None
    finalization: dict | None = None  # {"tx_hash", "block_number"}
    attempt: int = 1
    history: list[dict] = field(default_factory=list)  # superseded attempts
    last_error: dict | None = None
    agent_response: Any = None
    version: int = 0
    created_at: datetime = field(default_factory=utcnow)
    last_updated: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ledger_id": self.ledger_id,
            "creator": self.creator,
            "task_type": self.task_type,
            "task_data": self.task_data,
            "payment": str(self.payment),
            "status": self.status.value,
            "assigned_agent": self.assigned_agent,
            "signature": self.signature,
            "result": self.result,
            "result_ref": self.result_ref,
            "validation": self.validation.to_dict() if self.validation else None,
            "proof": self.proof.to_dict() if self.proof else None,
            "finalization": self.finalization,
            "attempt": self.attempt,
            "history": self.history,
            "last_error": self.last_error,
            "agent_response": self.agent_response,
            "version": self.version,
            "created_at": to_iso(self.created_at),
            "last_updated": to_iso(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Task":
        validation = data.get("validation")
        proof = data.get("proof")
        return cls(
            id=str(data["id"]),
            ledger_id=data.get("ledger_id"),
            creator=data["creator"],
            task_type=data["task_type"],
            task_data=data.get("task_data"),
            payment=to_decimal(data.get("payment", "0")),
            status=TaskStatus(data["status"]),
            assigned_agent=data.get("assigned_agent"),
            signature=data.get("signature"),
            result=data.get("result"),
            result_ref=data.get("result_ref"),
            validation=ValidationResult.from_dict(validation) if validation else None,
            proof=Proof.from_dict(proof) if proof else None,
            finalization=data.get("finalization"),
            attempt=int(data.get("attempt", 1)),
            history=list(data.get("history") or []),
            last_error=data.get("last_error"),
            agent_response=data.get("agent_response"),
            version=int(data.get("version", 0)),
            created_at=from_iso(data.get("created_at")) or utcnow(),
            last_updated=from_iso(data.get("last_updated")) or utcnow(),
        )
