"""Core data models for the task pipeline."""

from .agents import DEFAULT_REPUTATION, Agent, Allowance
from .attestation import REQUIRED_PROOF_FIELDS, Proof
from .bus import BusMessage, Topic
from .common import utcnow
from .tasks import (
    GenericResult,
    PriceResult,
    Task,
    TaskResult,
    TaskStatus,
    ValidationResult,
    parse_task_result,
)
from .tracing import TraceEvent

__all__ = [
    # Agents
    "Agent",
    "Allowance",
    "DEFAULT_REPUTATION",
    # Tasks
    "Task",
    "TaskStatus",
    "TaskResult",
    "PriceResult",
    "GenericResult",
    "ValidationResult",
    "parse_task_result",
    # Attestation
    "Proof",
    "REQUIRED_PROOF_FIELDS",
    # Bus
    "BusMessage",
    "Topic",
    # Tracing
    "TraceEvent",
    "utcnow",
]
