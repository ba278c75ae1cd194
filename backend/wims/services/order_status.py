from __future__ import annotations

from ..errors import InvalidTransitionError, ValidationError
from ..models import (
    ORDER_STATUSES,
    STATUS_CANCELLED,
    STATUS_CONFIRMED,
    STATUS_DELIVERED,
    STATUS_PENDING,
)

INITIAL_STATUS = STATUS_PENDING

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_PENDING: frozenset({STATUS_CONFIRMED, STATUS_CANCELLED}),
    STATUS_CONFIRMED: frozenset({STATUS_DELIVERED, STATUS_CANCELLED}),
    STATUS_DELIVERED: frozenset(),
    STATUS_CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, nxt in ALLOWED_TRANSITIONS.items() if not nxt)


def normalize_status(value) -> str:
    """Accept any casing ("confirmed", "CONFIRMED") and return the canonical name."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("status is required", {"field": "status"})
    wanted = value.strip().lower()
    for status in ORDER_STATUSES:
        if status.lower() == wanted:
            return status
    raise ValidationError(
        f"Unknown status: {value}",
        {"field": "status", "allowed": list(ORDER_STATUSES)},
    )


def can_transition(current: str, requested: str) -> bool:
    return requested in ALLOWED_TRANSITIONS.get(current, frozenset())


def assert_transition(current: str, requested: str) -> None:
    if not can_transition(current, requested):
        raise InvalidTransitionError(current, requested)
