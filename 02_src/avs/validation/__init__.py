"""Validation policy engine."""

from .policy import (
    AGENT_INACTIVE,
    INVALID_PRICE,
    PRICE_OUT_OF_BOUNDS,
    PRICE_TOLERANCE,
    SIGNATURE_INVALID,
    UNSUPPORTED_TASK_TYPE,
    ValidationPolicy,
    price_bounds,
)
from .service import ValidationService

__all__ = [
    "AGENT_INACTIVE",
    "INVALID_PRICE",
    "PRICE_OUT_OF_BOUNDS",
    "PRICE_TOLERANCE",
    "SIGNATURE_INVALID",
    "UNSUPPORTED_TASK_TYPE",
    "ValidationPolicy",
    "ValidationService",
    "price_bounds",
]
