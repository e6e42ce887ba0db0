"""Attestation (proof) data model."""

from dataclasses import dataclass, replace
from typing import Any

# Keys every serialised proof must carry to be checked at all.
REQUIRED_PROOF_FIELDS = ("signature", "taskData", "operatorId")


@dataclass(frozen=True)
class Proof:
    """A validator's signed statement that it accepted a task result.

    Immutable: a new validation attempt produces a new Proof.
    """

    task_id: str
    task_type: str
    task_data: Any
    result: Any
    timestamp: int  # milliseconds since epoch
    operator_id: str
    signature: str
    storage_ref: str | None = None

    def payload(self) -> dict:
        """The signed part of the proof."""
        return {
            "taskId": self.task_id,
            "taskType": self.task_type,
            "taskData": self.task_data,
            "result": self.result,
            "timestamp": self.timestamp,
            "operatorId": self.operator_id,
        }

    def with_storage_ref(self, storage_ref: str) -> "Proof":
        return replace(self, storage_ref=storage_ref)

    def to_dict(self) -> dict:
        return {
            **self.payload(),
            "signature": self.signature,
            "storageRef": self.storage_ref,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Proof":
        """Parse a serialised proof. Raises KeyError if a field is missing."""
        return cls(
            task_id=str(data["taskId"]),
            task_type=data.get("taskType", ""),
            task_data=data["taskData"],
            result=data.get("result"),
            timestamp=int(data.get("timestamp", 0)),
            operator_id=data["operatorId"],
            signature=data["signature"],
            storage_ref=data.get("storageRef"),
        )
