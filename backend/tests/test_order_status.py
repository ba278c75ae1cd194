import pytest

from wims.errors import InvalidTransitionError, ValidationError
from wims.models import ORDER_STATUSES
from wims.services.order_status import (
    INITIAL_STATUS,
    TERMINAL_STATUSES,
    assert_transition,
    can_transition,
    normalize_status,
)

LEGAL = {
    ("Pending", "Confirmed"),
    ("Pending", "Cancelled"),
    ("Confirmed", "Delivered"),
    ("Confirmed", "Cancelled"),
}


def test_initial_status_is_pending():
    assert INITIAL_STATUS == "Pending"


def test_delivered_and_cancelled_are_terminal():
    assert TERMINAL_STATUSES == {"Delivered", "Cancelled"}


@pytest.mark.parametrize("current", ORDER_STATUSES)
@pytest.mark.parametrize("requested", ORDER_STATUSES)
def test_transition_table(current, requested):
    allowed = (current, requested) in LEGAL
    assert can_transition(current, requested) is allowed
    if allowed:
        assert_transition(current, requested)
    else:
        with pytest.raises(InvalidTransitionError) as exc:
            assert_transition(current, requested)
        assert exc.value.details == {"current_status": current, "requested_status": requested}
        assert exc.value.http_status == 409


@pytest.mark.parametrize("raw", ["confirmed", "CONFIRMED", " Confirmed "])
def test_normalize_is_case_insensitive(raw):
    assert normalize_status(raw) == "Confirmed"


@pytest.mark.parametrize("raw", ["Shipped", "", None, 3])
def test_normalize_rejects_unknown(raw):
    with pytest.raises(ValidationError):
        normalize_status(raw)
