"""Case status graph.

    submitted -> analyzing -> pending_advocate -> pending_acceptance
      -> assigned -> in_progress -> resolved | completed -> closed

plus the side branches below. ``withdrawn`` is reachable from every
non-terminal status; ``closed`` and ``withdrawn`` accept nothing.

Edges into ``pending_acceptance`` and the ``pending_acceptance ->
assigned`` edge carry claim bookkeeping, and edges into ``resolved`` or
``completed`` carry the outcome that feeds the advocate's track record.
Only the dedicated operations may take them.
"""

from __future__ import annotations

from collections.abc import Mapping

from case_engine.core.exceptions import InvalidTransition
from case_engine.models.domain import CaseStatus

S = CaseStatus

TERMINAL_STATUSES: frozenset[CaseStatus] = frozenset({S.CLOSED, S.WITHDRAWN})
ACTIVE_STATUSES: frozenset[CaseStatus] = frozenset({S.ASSIGNED, S.IN_PROGRESS})
OUTCOME_STATUSES: frozenset[CaseStatus] = frozenset({S.RESOLVED, S.COMPLETED})
# Statuses in which a recorded advocate still holds the case.
CLAIM_HOLDING_STATUSES: frozenset[CaseStatus] = ACTIVE_STATUSES | {S.PENDING_ACCEPTANCE}

_FORWARD: dict[CaseStatus, frozenset[CaseStatus]] = {
    S.SUBMITTED: frozenset({S.ANALYZING, S.PENDING_ACCEPTANCE}),
    S.ANALYZING: frozenset({S.PENDING_ADVOCATE}),
    S.PENDING_ADVOCATE: frozenset({S.PENDING_ACCEPTANCE}),
    S.PENDING_ACCEPTANCE: frozenset({S.ASSIGNED, S.PENDING_ADVOCATE}),
    S.ASSIGNED: frozenset({S.IN_PROGRESS, S.RESOLVED, S.COMPLETED}),
    S.IN_PROGRESS: frozenset({S.RESOLVED, S.COMPLETED}),
    S.RESOLVED: frozenset({S.CLOSED}),
    S.COMPLETED: frozenset({S.CLOSED}),
    S.CLOSED: frozenset(),
    S.WITHDRAWN: frozenset(),
}

TRANSITIONS: Mapping[CaseStatus, frozenset[CaseStatus]] = {
    status: targets | ({S.WITHDRAWN} if status not in TERMINAL_STATUSES else frozenset())
    for status, targets in _FORWARD.items()
}

RESERVED_EDGES: frozenset[tuple[CaseStatus, CaseStatus]] = frozenset(
    {
        (S.SUBMITTED, S.PENDING_ACCEPTANCE),
        (S.PENDING_ADVOCATE, S.PENDING_ACCEPTANCE),
        (S.PENDING_ACCEPTANCE, S.ASSIGNED),
        (S.ASSIGNED, S.RESOLVED),
        (S.ASSIGNED, S.COMPLETED),
        (S.IN_PROGRESS, S.RESOLVED),
        (S.IN_PROGRESS, S.COMPLETED),
    }
)


def is_terminal(status: CaseStatus) -> bool:
    return status in TERMINAL_STATUSES


def is_active(status: CaseStatus) -> bool:
    """Active cases count against the assigned advocate's workload."""
    return status in ACTIVE_STATUSES


def can_transition(from_status: CaseStatus, to_status: CaseStatus) -> bool:
    return to_status in TRANSITIONS[from_status]


def validate_transition(
    from_status: CaseStatus,
    to_status: CaseStatus,
    *,
    allow_reserved: bool = False,
) -> None:
    """Raise InvalidTransition unless ``from_status -> to_status`` is a legal edge."""
    details = {"from_status": from_status.value, "to_status": to_status.value}
    if is_terminal(from_status):
        raise InvalidTransition(f"Case is {from_status.value} and cannot change status", details=details)
    if not can_transition(from_status, to_status):
        raise InvalidTransition(
            f"Cannot move a case from {from_status.value} to {to_status.value}",
            details={**details, "allowed": sorted(t.value for t in TRANSITIONS[from_status])},
        )
    if not allow_reserved and (from_status, to_status) in RESERVED_EDGES:
        raise InvalidTransition(
            f"{from_status.value} -> {to_status.value} is only reachable through its dedicated operation",
            details=details,
        )


def workload_delta(from_status: CaseStatus, to_status: CaseStatus) -> int:
    """+1 when a case enters the active set, -1 when it leaves, else 0."""
    return int(is_active(to_status)) - int(is_active(from_status))
