"""Tracing and observability data models."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class TraceEvent:
    """A single audit event (task transitions, ledger events, ...)."""

    id: str
    event_type: str  # e.g. "task_transition", "ledger_event_received"
    actor: str  # component that created this event
    data: dict
    timestamp: datetime
