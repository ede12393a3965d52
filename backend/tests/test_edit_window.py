from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from lensflow.services.edit_window import (
    as_utc,
    compute_edit_deadline,
    is_editable,
    is_production_eligible,
    remaining_edit_time,
)

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def test_normal_order_deadline_is_two_hours_after_creation() -> None:
    assert compute_edit_deadline(created_at=T0, is_urgent=False) == T0 + timedelta(hours=2)


def test_urgent_order_deadline_is_creation_time() -> None:
    assert compute_edit_deadline(created_at=T0, is_urgent=True) == T0


def test_custom_window_length() -> None:
    deadline = compute_edit_deadline(created_at=T0, is_urgent=False, window=timedelta(minutes=30))

    assert deadline == T0 + timedelta(minutes=30)


@pytest.mark.parametrize(
    ("offset", "editable", "eligible"),
    [
        (timedelta(0), True, False),
        (timedelta(hours=1), True, False),
        (timedelta(hours=2), False, True),
        (timedelta(hours=3), False, True),
    ],
)
def test_normal_order_window(offset, editable, eligible) -> None:
    deadline = compute_edit_deadline(created_at=T0, is_urgent=False)
    now = T0 + offset

    assert is_editable(status="new", edit_deadline=deadline, now=now) is editable
    assert is_production_eligible(is_urgent=False, edit_deadline=deadline, now=now) is eligible


def test_urgent_order_is_locked_and_eligible_immediately() -> None:
    deadline = compute_edit_deadline(created_at=T0, is_urgent=True)

    assert is_editable(status="new", edit_deadline=deadline, now=T0) is False
    assert is_production_eligible(is_urgent=True, edit_deadline=deadline, now=T0) is True


@pytest.mark.parametrize("status", ["in_production", "ready", "cancelled"])
def test_only_new_orders_are_editable(status) -> None:
    deadline = compute_edit_deadline(created_at=T0, is_urgent=False)

    assert is_editable(status=status, edit_deadline=deadline, now=T0) is False


def test_remaining_time_is_clamped_at_zero() -> None:
    deadline = compute_edit_deadline(created_at=T0, is_urgent=False)

    assert remaining_edit_time(edit_deadline=deadline, now=T0 + timedelta(minutes=30)) == timedelta(minutes=90)
    assert remaining_edit_time(edit_deadline=deadline, now=T0 + timedelta(hours=5)) == timedelta(0)


def test_naive_database_values_are_read_as_utc() -> None:
    naive = datetime(2026, 3, 2, 11, 0)

    assert as_utc(naive) == T0 + timedelta(hours=2)
    assert is_editable(status="new", edit_deadline=naive, now=T0) is True
