"""Task registry module."""

from .registry import TaskRegistry
from .state_machine import (
    FAILURE_STATES,
    RETRY_EDGES,
    TRANSITIONS,
    can_transition,
    is_terminal,
)

__all__ = [
    "FAILURE_STATES",
    "RETRY_EDGES",
    "TRANSITIONS",
    "TaskRegistry",
    "can_transition",
    "is_terminal",
]
