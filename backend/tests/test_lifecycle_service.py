import pytest

from rentstock.errors import InvalidTransition
from rentstock.services import lifecycle_service
from rentstock.services.lifecycle_service import RENTAL, SALE
from rentstock.validation import ValidationError


@pytest.mark.parametrize(
    "from_status, to_status, allowed",
    [
        ("pending", "active", True),
        ("pending", "cancelled", True),
        ("active", "completed", True),
        ("active", "cancelled", True),
        ("pending", "completed", False),
        ("active", "pending", False),
        ("active", "active", False),
        ("completed", "cancelled", False),
        ("cancelled", "active", False),
    ],
)
def test_rental_transitions(from_status, to_status, allowed):
    assert lifecycle_service.can_transition(RENTAL, from_status, to_status) is allowed


@pytest.mark.parametrize(
    "from_status, to_status, allowed",
    [
        ("pending", "completed", True),
        ("pending", "cancelled", True),
        ("completed", "cancelled", True),
        ("completed", "pending", False),
        ("cancelled", "pending", False),
        ("cancelled", "completed", False),
        ("pending", "pending", False),
    ],
)
def test_sale_transitions(from_status, to_status, allowed):
    assert lifecycle_service.can_transition(SALE, from_status, to_status) is allowed


def test_ensure_transition_raises_with_details():
    with pytest.raises(InvalidTransition) as exc_info:
        lifecycle_service.ensure_transition(RENTAL, "completed", "active")
    assert exc_info.value.details == {"from": "completed", "to": "active"}


def test_unknown_status_is_validation_error():
    with pytest.raises(ValidationError):
        lifecycle_service.can_transition(SALE, "pending", "refunded")
    with pytest.raises(ValidationError):
        lifecycle_service.validate_status(RENTAL, "returned")


def test_terminal_states():
    assert lifecycle_service.is_terminal(RENTAL, "completed")
    assert lifecycle_service.is_terminal(RENTAL, "cancelled")
    assert not lifecycle_service.is_terminal(SALE, "completed")
    assert lifecycle_service.is_terminal(SALE, "cancelled")
