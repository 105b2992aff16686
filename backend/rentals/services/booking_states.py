"""Booking status state machine.

::

    pending ──► confirmed ──► completed
       │            │
       └────────────┴──► cancelled

``completed`` and ``cancelled`` are terminal.
"""

from rentals.errors import ValidationError

TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"confirmed", "cancelled"}),
    "confirmed": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}

INITIAL_STATUS = "pending"


def is_terminal(status: str) -> bool:
    return not TRANSITIONS.get(status)


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def ensure_transition(current: str, target: str) -> None:
    """Raise :class:`ValidationError` unless ``current -> target`` is an allowed edge."""
    if target not in TRANSITIONS:
        raise ValidationError(f"Unknown booking status: {target}")
    if current == target:
        raise ValidationError(f"Booking is already {current}")
    if not can_transition(current, target):
        if is_terminal(current):
            raise ValidationError(f"Booking is {current} and can no longer change status")
        raise ValidationError(f"Cannot change booking status from {current} to {target}")
