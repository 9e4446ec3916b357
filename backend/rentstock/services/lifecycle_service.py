# Overview: Status machines for rentals and sales.

"""
RentStock Transaction Lifecycle Rules

RENTAL:
    pending -> active -> completed
    pending | active -> cancelled

    pending:   assets already claimed; dates, rate and assets editable
    active:    customer holds the assets; still editable
    completed: TERMINAL, assets released, penalty settled
    cancelled: TERMINAL, assets released

SALE:
    pending -> completed -> cancelled
    pending -> cancelled

    pending:   stock validated but NOT deducted; editable and deletable
    completed: stock deducted; may only be cancelled (restores stock)
    cancelled: TERMINAL

RULES:
1. A transition to the same status is not a transition (rejected).
2. Terminal states accept nothing.
3. Unknown status values are input errors, not transition errors.
"""

from __future__ import annotations

from ..errors import InvalidTransition
from ..models.rentals import (
    RENTAL_ACTIVE,
    RENTAL_CANCELLED,
    RENTAL_COMPLETED,
    RENTAL_PENDING,
    RENTAL_STATUSES,
)
from ..models.sales import SALE_CANCELLED, SALE_COMPLETED, SALE_PENDING, SALE_STATUSES
from ..validation import ValidationError

RENTAL = "rental"
SALE = "sale"

RENTAL_TRANSITIONS = {
    RENTAL_PENDING: {RENTAL_ACTIVE, RENTAL_CANCELLED},
    RENTAL_ACTIVE: {RENTAL_COMPLETED, RENTAL_CANCELLED},
    RENTAL_COMPLETED: set(),
    RENTAL_CANCELLED: set(),
}

SALE_TRANSITIONS = {
    SALE_PENDING: {SALE_COMPLETED, SALE_CANCELLED},
    SALE_COMPLETED: {SALE_CANCELLED},
    SALE_CANCELLED: set(),
}

_MACHINES = {
    RENTAL: (RENTAL_STATUSES, RENTAL_TRANSITIONS),
    SALE: (SALE_STATUSES, SALE_TRANSITIONS),
}


def validate_status(kind: str, status: str) -> None:
    """
    Raises:
        ValidationError: if status is not one of the kind's statuses
    """
    statuses, _ = _MACHINES[kind]
    if status not in statuses:
        raise ValidationError(
            f"Invalid {kind} status '{status}'. Must be one of: {', '.join(statuses)}"
        )


def can_transition(kind: str, from_status: str, to_status: str) -> bool:
    validate_status(kind, from_status)
    validate_status(kind, to_status)
    _, transitions = _MACHINES[kind]
    return to_status in transitions[from_status]


def ensure_transition(kind: str, from_status: str, to_status: str) -> None:
    """
    Raises:
        ValidationError: unknown status
        InvalidTransition: transition not allowed from from_status
    """
    if not can_transition(kind, from_status, to_status):
        raise InvalidTransition(
            f"Cannot change {kind} status from '{from_status}' to '{to_status}'",
            details={"from": from_status, "to": to_status},
        )


def is_terminal(kind: str, status: str) -> bool:
    validate_status(kind, status)
    _, transitions = _MACHINES[kind]
    return not transitions[status]
