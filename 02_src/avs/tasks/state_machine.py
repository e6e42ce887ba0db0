"""Task status graph.

Allowed edges are listed explicitly; anything not in the table is illegal.
Failure states are only left through the explicit retry edges.
"""

from ..models import TaskStatus

S = TaskStatus

TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    S.CREATED: frozenset({S.ASSIGNED, S.SUBMITTED}),
    S.SUBMITTED: frozenset({S.COMPLETED, S.ASSIGNED, S.VALIDATION_FAILED}),
    S.ASSIGNED: frozenset({S.COMPLETED, S.ASSIGNED, S.VALIDATION_FAILED}),
    S.COMPLETED: frozenset({S.VALIDATED, S.VALIDATION_FAILED}),
    S.VALIDATED: frozenset({S.PROOF_GENERATED}),
    S.PROOF_GENERATED: frozenset({S.PROOF_VERIFIED, S.PROOF_VERIFICATION_FAILED}),
    S.PROOF_VERIFIED: frozenset({S.FINALIZED}),
    S.VALIDATION_FAILED: frozenset({S.COMPLETED, S.ASSIGNED}),
    S.PROOF_VERIFICATION_FAILED: frozenset({S.COMPLETED}),
    S.FINALIZED: frozenset(),
}

FAILURE_STATES = frozenset({S.VALIDATION_FAILED, S.PROOF_VERIFICATION_FAILED})

# Edges out of failure states that only retry() may take.
RETRY_EDGES = frozenset(
    (source, target) for source in FAILURE_STATES for target in TRANSITIONS[source]
)


def can_transition(source: TaskStatus, target: TaskStatus) -> bool:
    return target in TRANSITIONS[source]


def is_terminal(status: TaskStatus) -> bool:
    """True for states nothing advances automatically."""
    return status in FAILURE_STATES or status in (S.PROOF_VERIFIED, S.FINALIZED)
