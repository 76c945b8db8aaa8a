"""
Invoice state machine - pure transition rules, no side effects.
"""
from __future__ import annotations

from collections import deque
from typing import Optional

from domain.common.exceptions import InvalidTransitionException
from .entity import InvoiceStatus, TERMINAL_STATUSES


TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.CREATED: frozenset({InvoiceStatus.PENDING, InvoiceStatus.FAILED}),
    InvoiceStatus.PENDING: frozenset({InvoiceStatus.DETECTED, InvoiceStatus.EXPIRED, InvoiceStatus.FAILED}),
    InvoiceStatus.DETECTED: frozenset({InvoiceStatus.CONFIRMED, InvoiceStatus.FAILED, InvoiceStatus.EXPIRED}),
    InvoiceStatus.CONFIRMED: frozenset({InvoiceStatus.PAID, InvoiceStatus.FAILED}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.FAILED: frozenset(),
    InvoiceStatus.EXPIRED: frozenset(),
}


def can_transition(current: InvoiceStatus, next_status: InvoiceStatus) -> bool:
    """Non-raising form of validate_transition."""
    return InvoiceStatus(next_status) in TRANSITIONS.get(InvoiceStatus(current), frozenset())


def validate_transition(current: InvoiceStatus, next_status: InvoiceStatus) -> None:
    """Raise InvalidTransitionException unless current -> next_status is an edge.

    The table has no self-edges; callers that want "same status" to be a
    no-op must check that before validating.
    """
    if not can_transition(current, next_status):
        raise InvalidTransitionException(InvoiceStatus(current), InvoiceStatus(next_status))


def is_terminal(status: InvoiceStatus) -> bool:
    return InvoiceStatus(status) in TERMINAL_STATUSES


def forward_path(current: InvoiceStatus, target: InvoiceStatus) -> Optional[list[InvoiceStatus]]:
    """Shortest chain of legal edges leading from current to target.

    Returns [] when current == target, None when target is unreachable.
    The returned list excludes current and ends with target.
    """
    current = InvoiceStatus(current)
    target = InvoiceStatus(target)
    if current == target:
        return []
    previous: dict[InvoiceStatus, InvoiceStatus] = {}
    queue = deque([current])
    while queue:
        node = queue.popleft()
        for candidate in sorted(TRANSITIONS[node], key=lambda s: s.value):
            if candidate in previous or candidate == current:
                continue
            previous[candidate] = node
            if candidate == target:
                path = [candidate]
                while path[-1] in previous and previous[path[-1]] != current:
                    path.append(previous[path[-1]])
                path.reverse()
                return path
            queue.append(candidate)
    return None
