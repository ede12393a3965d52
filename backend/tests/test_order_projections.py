from __future__ import annotations

from datetime import timedelta
from types import SimpleNamespace
from uuid import uuid4

import pytest

from conftest import T0, order_payload
from lensflow.domain_errors import Forbidden, NotFound, ValidationError
from lensflow.services.order_response_builder import PRICE_FIELDS
from lensflow.use_cases.order_lifecycle import create_order_use_case, update_payment_status_use_case
from lensflow.use_cases.order_queries import (
    get_order_use_case,
    list_orders_use_case,
    list_payments_use_case,
    order_board_use_case,
    order_history_use_case,
)


@pytest.fixture()
def orders(db, world):
    ours = create_order_use_case(db=db, data=order_payload(), current_user=world.users["optic_doctor"], now=T0)
    private = create_order_use_case(
        db=db,
        data=order_payload(is_urgent=True),
        current_user=world.users["doctor"],
        now=T0 + timedelta(minutes=5),
    )
    theirs = create_order_use_case(
        db=db,
        data=order_payload(),
        current_user=world.outsider,
        now=T0 + timedelta(minutes=10),
    )
    return {"ours": ours, "private": private, "theirs": theirs}


def _ids(rows):
    return {row["order_id"] for row in rows}


def test_lab_sees_every_order(db, world, orders) -> None:
    rows = list_orders_use_case(db=db, current_user=world.users["lab_engineer"], now=T0)

    assert _ids(rows) == {order.order_number for order in orders.values()}


def test_clinic_sees_only_its_organization(db, world, orders) -> None:
    rows = list_orders_use_case(db=db, current_user=world.users["optic_manager"], now=T0)

    assert _ids(rows) == {orders["ours"].order_number}


def test_independent_doctor_sees_only_own_orders(db, world, orders) -> None:
    rows = list_orders_use_case(db=db, current_user=world.users["doctor"], now=T0)

    assert _ids(rows) == {orders["private"].order_number}


def test_status_and_organization_filters(db, world, orders) -> None:
    lab = world.users["lab_head"]

    by_org = list_orders_use_case(db=db, current_user=lab, now=T0, organization_id=world.other_clinic.id)
    assert _ids(by_org) == {orders["theirs"].order_number}
    assert list_orders_use_case(db=db, current_user=lab, now=T0, status="ready") == []


def test_price_fields_are_omitted_without_price_capability(db, world, orders) -> None:
    number = orders["ours"].order_number

    engineer_view = get_order_use_case(db=db, order_number=number, current_user=world.users["lab_engineer"], now=T0)
    manager_view = get_order_use_case(db=db, order_number=number, current_user=world.users["optic_manager"], now=T0)

    for field in PRICE_FIELDS:
        assert field not in engineer_view
        assert field in manager_view
    assert "payment_status" not in engineer_view
    assert manager_view["total_price"] == 76000
    assert manager_view["payment_status"] == "unpaid"


def test_doctor_projection_has_no_prices_or_payment(db, world, orders) -> None:
    view = get_order_use_case(
        db=db,
        order_number=orders["private"].order_number,
        current_user=world.users["doctor"],
        now=T0 + timedelta(minutes=5),
    )

    assert not set(PRICE_FIELDS) & set(view)
    assert "payment_status" not in view
    assert view["editable"] is False
    assert view["production_eligible"] is True


def test_edit_window_fields_reflect_now(db, world, orders) -> None:
    number = orders["ours"].order_number
    manager = world.users["optic_manager"]

    early = get_order_use_case(db=db, order_number=number, current_user=manager, now=T0 + timedelta(minutes=30))
    late = get_order_use_case(db=db, order_number=number, current_user=manager, now=T0 + timedelta(hours=4))

    assert early["editable"] is True
    assert early["edit_seconds_remaining"] == 90 * 60
    assert early["production_eligible"] is False
    assert late["editable"] is False
    assert late["edit_seconds_remaining"] == 0
    assert late["production_eligible"] is True


def test_foreign_order_is_not_found(db, world, orders) -> None:
    with pytest.raises(NotFound):
        get_order_use_case(
            db=db,
            order_number=orders["theirs"].order_number,
            current_user=world.users["optic_manager"],
            now=T0,
        )


def test_accountant_list_falls_back_to_payment_projection(db, world, orders) -> None:
    rows = list_orders_use_case(db=db, current_user=world.users["optic_accountant"], now=T0)

    assert _ids(rows) == {orders["ours"].order_number}
    assert set(rows[0]) >= {"order_id", "payment_status", "total_price"}
    assert "config" not in rows[0]


def test_list_requires_some_order_capability(db, world, orders) -> None:
    retired = SimpleNamespace(id=uuid4(), sub_role="retired_role", organization_id=world.lab.id)

    with pytest.raises(Forbidden):
        list_orders_use_case(db=db, current_user=retired, now=T0)


def test_board_groups_by_every_status(db, world, orders) -> None:
    board = order_board_use_case(db=db, current_user=world.users["lab_quality"], now=T0)

    assert list(board) == [
        "new", "in_production", "ready", "rework", "shipped", "out_for_delivery", "delivered", "cancelled",
    ]
    assert len(board["new"]) == 3

    with pytest.raises(Forbidden):
        order_board_use_case(db=db, current_user=world.users["optic_manager"], now=T0)


def test_payments_list_filters_and_requires_capability(db, world, orders) -> None:
    update_payment_status_use_case(
        db=db,
        order_number=orders["theirs"].order_number,
        payment_status="paid",
        current_user=world.users["lab_accountant"],
        now=T0,
    )

    paid = list_payments_use_case(db=db, current_user=world.users["lab_accountant"], payment_status="paid")
    assert _ids(paid) == {orders["theirs"].order_number}

    with pytest.raises(Forbidden):
        list_payments_use_case(db=db, current_user=world.users["lab_engineer"])


def test_payments_filter_rejects_unknown_payment_status(db, world, orders) -> None:
    with pytest.raises(ValidationError) as exc:
        list_payments_use_case(db=db, current_user=world.users["lab_accountant"], payment_status="payed")

    assert exc.value.code == "INVALID_PAYMENT_STATUS"


def test_history_hides_payment_events_without_payment_capability(db, world, orders) -> None:
    number = orders["ours"].order_number
    update_payment_status_use_case(
        db=db,
        order_number=number,
        payment_status="partial",
        current_user=world.users["lab_accountant"],
        now=T0 + timedelta(minutes=1),
    )

    full = order_history_use_case(db=db, order_number=number, current_user=world.users["lab_head"])
    redacted = order_history_use_case(db=db, order_number=number, current_user=world.users["optic_doctor"])

    assert [event["action"] for event in full] == ["order_created", "order_payment_changed"]
    assert [event["action"] for event in redacted] == ["order_created"]
