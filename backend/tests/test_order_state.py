from __future__ import annotations

from datetime import datetime, timezone
from itertools import product

import pytest

from lensflow.domain_errors import InvalidTransition, ValidationError
from lensflow.services.order_state import (
    ALLOWED_TRANSITIONS,
    TARGET_CAPABILITY,
    TERMINAL_STATUSES,
    OrderStatus,
    apply_status_timestamps,
    is_terminal_status,
    parse_order_status,
    parse_payment_status,
    validate_status_transition,
)
from lensflow.services.permissions import Capability

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

EXPECTED_EDGES = {
    ("new", "in_production"),
    ("in_production", "ready"),
    ("ready", "rework"),
    ("rework", "in_production"),
    ("ready", "shipped"),
    ("shipped", "out_for_delivery"),
    ("out_for_delivery", "delivered"),
    ("new", "cancelled"),
    ("in_production", "cancelled"),
    ("ready", "cancelled"),
    ("rework", "cancelled"),
    ("shipped", "cancelled"),
    ("out_for_delivery", "cancelled"),
}


def test_transition_table_matches_the_lifecycle_graph() -> None:
    edges = {(source.value, target.value) for source, targets in ALLOWED_TRANSITIONS.items() for target in targets}

    assert edges == EXPECTED_EDGES


@pytest.mark.parametrize(("source", "target"), list(product(OrderStatus, OrderStatus)))
def test_every_pair_is_either_allowed_or_invalid(source, target) -> None:
    if (source.value, target.value) in EXPECTED_EDGES:
        assert validate_status_transition(current_status=source, next_status=target) is target
    else:
        with pytest.raises(InvalidTransition) as exc:
            validate_status_transition(current_status=source.value, next_status=target)
        assert exc.value.code == "INVALID_TRANSITION"
        assert exc.value.details == {"from": source.value, "to": target.value}


def test_terminal_states_have_no_exits() -> None:
    assert TERMINAL_STATUSES == {OrderStatus.DELIVERED, OrderStatus.CANCELLED}
    for status in TERMINAL_STATUSES:
        assert ALLOWED_TRANSITIONS[status] == frozenset()
        assert is_terminal_status(status.value)


def test_every_target_has_a_permission_rule() -> None:
    assert set(TARGET_CAPABILITY) == set(OrderStatus)
    assert TARGET_CAPABILITY[OrderStatus.DELIVERED] is None
    assert TARGET_CAPABILITY[OrderStatus.SHIPPED] is Capability.SHIP
    assert TARGET_CAPABILITY[OrderStatus.CANCELLED] is Capability.CHANGE_STATUS


def test_unknown_status_is_a_validation_error() -> None:
    with pytest.raises(ValidationError, match="Unknown order status") as exc:
        parse_order_status("lost_in_mail")

    assert exc.value.code == "UNKNOWN_ORDER_STATUS"


def test_payment_status_parsing() -> None:
    assert parse_payment_status(" Paid ").value == "paid"
    with pytest.raises(ValidationError) as exc:
        parse_payment_status("refunded")
    assert exc.value.code == "INVALID_PAYMENT_STATUS"


def test_first_entry_into_production_is_stamped_once() -> None:
    first = apply_status_timestamps(
        next_status=OrderStatus.IN_PRODUCTION,
        production_started_at=None,
        production_completed_at=None,
        shipped_at=None,
        delivered_at=None,
        at=T0,
    )
    later = datetime(2026, 3, 3, tzinfo=timezone.utc)
    again = apply_status_timestamps(
        next_status=OrderStatus.IN_PRODUCTION,
        production_started_at=first["production_started_at"],
        production_completed_at=None,
        shipped_at=None,
        delivered_at=None,
        at=later,
    )

    assert first["production_started_at"] == T0
    assert again["production_started_at"] == T0


def test_rework_sets_no_timestamp() -> None:
    stamps = apply_status_timestamps(
        next_status=OrderStatus.REWORK,
        production_started_at=T0,
        production_completed_at=T0,
        shipped_at=None,
        delivered_at=None,
        at=datetime(2026, 3, 4, tzinfo=timezone.utc),
    )

    assert stamps == {
        "production_started_at": T0,
        "production_completed_at": T0,
        "shipped_at": None,
        "delivered_at": None,
    }
