import pytest

from convenio.domain.consultations.transitions import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    is_transition_allowed,
    validate_status_change,
)
from convenio.errors import InvalidInput, InvalidTransition


@pytest.mark.parametrize(
    "current, requested",
    [
        ("scheduled", "confirmed"),
        ("scheduled", "completed"),
        ("scheduled", "cancelled"),
        ("confirmed", "completed"),
        ("confirmed", "cancelled"),
    ],
)
def test_allowed_transitions(current, requested):
    assert is_transition_allowed(current, requested)


@pytest.mark.parametrize(
    "current, requested",
    [
        ("completed", "scheduled"),
        ("completed", "cancelled"),
        ("cancelled", "scheduled"),
        ("cancelled", "confirmed"),
        ("confirmed", "scheduled"),
    ],
)
def test_illegal_transitions(current, requested):
    assert not is_transition_allowed(current, requested)
    with pytest.raises(InvalidTransition) as exc:
        validate_status_change(current, requested)
    assert exc.value.status_code == 409
    assert exc.value.current == current


def test_terminal_statuses():
    assert TERMINAL_STATUSES == {"completed", "cancelled"}
    assert set(ALLOWED_TRANSITIONS) == {"scheduled", "confirmed", "completed", "cancelled"}


def test_same_status_is_a_no_op():
    for status in ALLOWED_TRANSITIONS:
        assert validate_status_change(status, status) is False


def test_unknown_status_is_invalid_input():
    with pytest.raises(InvalidInput) as exc:
        validate_status_change("scheduled", "no_show")
    assert exc.value.field == "status"
