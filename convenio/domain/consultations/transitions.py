"""Consultation status state machine"""

from ...errors import InvalidInput, InvalidTransition
from ...models import CONSULTATION_STATUSES

ALLOWED_TRANSITIONS: dict[str, frozenset] = {
    "scheduled": frozenset({"confirmed", "completed", "cancelled"}),
    "confirmed": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)


def is_transition_allowed(current: str, requested: str) -> bool:
    return requested in ALLOWED_TRANSITIONS.get(current, frozenset())


def validate_status_change(current: str, requested: str) -> bool:
    """
    Check a requested status against the current one.

    Returns False when the status is unchanged (nothing to write), True for a
    legal transition. Raises InvalidInput for unknown statuses and
    InvalidTransition for illegal moves.
    """
    if requested not in CONSULTATION_STATUSES:
        raise InvalidInput(
            f"Invalid status '{requested}'. Must be one of: {', '.join(CONSULTATION_STATUSES)}",
            field="status",
        )
    if requested == current:
        return False
    if not is_transition_allowed(current, requested):
        raise InvalidTransition(current, requested)
    return True
