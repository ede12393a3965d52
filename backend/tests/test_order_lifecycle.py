from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import T0, lens_config, order_payload
from lensflow.domain_errors import (
    Conflict,
    EditWindowClosed,
    Forbidden,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from lensflow.models import AuditEvent, Order, Product
from lensflow.schemas import ExternalOrderCreate, ExternalPatient, OrderUpdate, PatientIn
from lensflow.services.edit_window import as_utc
from lensflow.services.order_state import OrderStatus
from lensflow.use_cases.external_orders import ingest_external_order_use_case
from lensflow.use_cases.order_lifecycle import (
    change_order_status_use_case,
    create_order_use_case,
    update_order_use_case,
    update_payment_status_use_case,
)


def _create(db, world, *, role="optic_manager", at=T0, **payload):
    return create_order_use_case(db=db, data=order_payload(**payload), current_user=world.users[role], now=at)


def _force_status(db, order, status):
    order.status = status
    db.commit()


def _transition(db, world, order, status, *, role="lab_head", at=None, **kwargs):
    return change_order_status_use_case(
        db=db,
        order_number=order.order_number,
        next_status=status,
        current_user=world.users[role] if isinstance(role, str) else role,
        now=at or T0 + timedelta(hours=3),
        **kwargs,
    )


def _actions(db, order):
    return [
        event.action
        for event in db.query(AuditEvent).filter(AuditEvent.order_id == order.id).order_by(AuditEvent.created_at).all()
    ]


def test_clinic_creation_snapshots_price_and_deadline(db, world) -> None:
    order = _create(db, world)

    assert order.order_number.startswith("LX-")
    assert order.status == "new"
    assert order.organization_id == world.clinic.id
    assert order.clinic_name == "Optika Vision"
    assert order.doctor_name == world.users["optic_manager"].full_name
    assert order.base_price == 80000
    assert order.discount_percent == 5.0
    assert order.total_price == 76000
    assert order.payment_status == "unpaid"
    assert order.source == "first_party"
    assert as_utc(order.edit_deadline) == T0 + timedelta(hours=2)
    assert _actions(db, order) == ["order_created"]


def test_urgent_creation_adds_surcharge_and_locks_immediately(db, world) -> None:
    order = _create(db, world, is_urgent=True)

    assert order.urgent_surcharge == 19000
    assert order.total_price == 95000
    assert as_utc(order.edit_deadline) == T0


def test_clinic_discount_is_used_for_pricing(db, world) -> None:
    order = _create(db, world, role="lab_head", organization_id=world.other_clinic.id)

    assert order.organization_id == world.other_clinic.id
    assert order.discount_percent == 10.0
    assert order.total_price == 72000


def test_independent_doctor_uses_personal_discount(db, world) -> None:
    doctor = world.users["doctor"]
    doctor.discount_percent = 7
    db.commit()

    order = _create(db, world, role="doctor")

    assert order.organization_id is None
    assert order.created_by_id == doctor.id
    assert order.discount_amount == 5600
    assert order.total_price == 74400


def test_lab_creation_for_unknown_clinic_is_not_found(db, world) -> None:
    with pytest.raises(NotFound) as exc:
        _create(db, world, role="lab_head", organization_id=world.lab.id)

    assert exc.value.code == "CLINIC_NOT_FOUND"


def test_creation_requires_create_capability(db, world) -> None:
    with pytest.raises(Forbidden) as exc:
        _create(db, world, role="lab_accountant")

    assert exc.value.details == {"capability": "canCreateOrders"}
    assert db.query(Order).count() == 0


def test_creation_without_catalog_price_fails_and_persists_nothing(db, world) -> None:
    db.query(Product).filter(Product.characteristic == "rgp").update({"is_active": False})
    db.commit()

    with pytest.raises(ValidationError) as exc:
        _create(db, world, characteristic="rgp")

    assert exc.value.code == "LENS_PRICE_NOT_FOUND"
    assert db.query(Order).count() == 0


def test_normal_order_window_edit_then_lock_then_production(db, world) -> None:
    order = _create(db, world)
    manager = world.users["optic_manager"]

    edited = update_order_use_case(
        db=db,
        order_number=order.order_number,
        data=OrderUpdate(config=lens_config("rgp", od_qty=2), notes="left eye trial"),
        current_user=manager,
        now=T0 + timedelta(hours=1),
    )
    assert edited.base_price == 3 * 32000
    assert edited.total_price == 96000 - 4800
    assert edited.notes == "left eye trial"

    with pytest.raises(EditWindowClosed) as exc:
        update_order_use_case(
            db=db,
            order_number=order.order_number,
            data=OrderUpdate(notes="too late"),
            current_user=manager,
            now=T0 + timedelta(hours=3),
        )
    assert exc.value.code == "EDIT_WINDOW_CLOSED"

    moved = _transition(db, world, order, "in_production", role="lab_engineer", at=T0 + timedelta(hours=3))
    assert moved.status == "in_production"
    assert as_utc(moved.production_started_at) == T0 + timedelta(hours=3)


def test_urgent_order_cannot_be_edited_but_starts_at_once(db, world) -> None:
    order = _create(db, world, is_urgent=True)

    with pytest.raises(EditWindowClosed):
        update_order_use_case(
            db=db,
            order_number=order.order_number,
            data=OrderUpdate(patient=PatientIn(name="Ivan Sidorov")),
            current_user=world.users["optic_manager"],
            now=T0,
        )

    moved = _transition(db, world, order, "in_production", role="lab_engineer", at=T0)
    assert moved.status == "in_production"


def test_production_cannot_start_inside_edit_window(db, world) -> None:
    order = _create(db, world)

    with pytest.raises(EditWindowClosed) as exc:
        _transition(db, world, order, "in_production", role="lab_engineer", at=T0 + timedelta(minutes=30))

    assert exc.value.code == "EDIT_WINDOW_STILL_OPEN"
    assert exc.value.http_status == 400


def test_edit_by_lab_staff_is_forbidden(db, world) -> None:
    order = _create(db, world)

    with pytest.raises(Forbidden) as exc:
        update_order_use_case(
            db=db,
            order_number=order.order_number,
            data=OrderUpdate(notes="lab note"),
            current_user=world.users["lab_head"],
            now=T0,
        )

    assert exc.value.code == "ORDER_EDIT_FORBIDDEN"


def test_other_clinic_sees_order_as_missing(db, world) -> None:
    order = _create(db, world)

    with pytest.raises(NotFound):
        update_order_use_case(
            db=db,
            order_number=order.order_number,
            data=OrderUpdate(notes="not mine"),
            current_user=world.outsider,
            now=T0,
        )


def test_empty_edit_is_a_no_op(db, world) -> None:
    order = _create(db, world)
    version = order.version

    same = update_order_use_case(
        db=db,
        order_number=order.order_number,
        data=OrderUpdate(),
        current_user=world.users["optic_manager"],
        now=T0,
    )

    assert same.version == version
    assert _actions(db, order) == ["order_created"]


def test_full_lifecycle_with_rework_loop(db, world) -> None:
    order = _create(db, world)
    t = T0 + timedelta(hours=3)

    _transition(db, world, order, "in_production", role="lab_engineer", at=t)
    _transition(db, world, order, "ready", role="lab_engineer", at=t + timedelta(hours=1))
    _transition(db, world, order, "rework", role="lab_quality", at=t + timedelta(hours=2))
    _transition(db, world, order, "in_production", role="lab_engineer", at=t + timedelta(hours=3))
    _transition(db, world, order, "ready", role="lab_engineer", at=t + timedelta(hours=4))
    shipped = _transition(db, world, order, "shipped", role="lab_admin", at=t + timedelta(hours=5))
    assert shipped.tracking_number.startswith("TRK-")
    _transition(db, world, order, "out_for_delivery", role="lab_logistics", at=t + timedelta(hours=6))
    done = _transition(db, world, order, "delivered", role="optic_doctor", at=t + timedelta(hours=7))

    assert done.status == "delivered"
    assert as_utc(done.production_started_at) == t
    assert as_utc(done.production_completed_at) == t + timedelta(hours=1)
    assert as_utc(done.shipped_at) == t + timedelta(hours=5)
    assert as_utc(done.delivered_at) == t + timedelta(hours=7)
    assert _actions(db, order).count("order_status_changed") == 8


def test_existing_tracking_number_is_kept(db, world) -> None:
    order = _create(db, world)
    order.tracking_number = "CDEK-1"
    _force_status(db, order, "ready")

    shipped = _transition(db, world, order, "shipped")

    assert shipped.tracking_number == "CDEK-1"


@pytest.mark.parametrize("current", [status.value for status in OrderStatus])
def test_actor_without_ship_capability_is_forbidden_in_every_state(db, world, current) -> None:
    order = _create(db, world)
    _force_status(db, order, current)

    with pytest.raises(Forbidden) as exc:
        _transition(db, world, order, "shipped", role="lab_engineer")

    assert exc.value.details == {"capability": "canShip"}
    assert db.get(Order, order.id).status == current


@pytest.mark.parametrize("role", ["lab_head", "lab_logistics", "lab_engineer"])
def test_only_owning_clinic_actor_confirms_delivery(db, world, role) -> None:
    order = _create(db, world)
    _force_status(db, order, "out_for_delivery")

    with pytest.raises(Forbidden) as exc:
        _transition(db, world, order, "delivered", role=role)

    assert exc.value.code == "DELIVERY_CONFIRMATION_FORBIDDEN"


def test_independent_doctor_confirms_own_delivery(db, world) -> None:
    order = _create(db, world, role="doctor")
    _force_status(db, order, "out_for_delivery")

    done = _transition(db, world, order, "delivered", role="doctor")

    assert done.status == "delivered"



def _unowned_external_order(db):
    created = ingest_external_order_use_case(
        db=db,
        data=ExternalOrderCreate(
            creator_name="Dr. Remote",
            clinic_name="Unknown Optics",
            patient=ExternalPatient(name="Anna Volkova"),
            config=lens_config("spherical"),
        ),
        now=T0,
    )
    return db.query(Order).filter(Order.order_number == created["order_id"]).one()


@pytest.mark.parametrize("role", ["lab_logistics", "lab_head", "lab_admin"])
def test_lab_confirms_delivery_of_order_without_owning_clinic(db, world, role) -> None:
    order = _unowned_external_order(db)
    assert order.organization_id is None and order.created_by_id is None
    _force_status(db, order, "out_for_delivery")

    done = _transition(db, world, order, "delivered", role=role)

    assert done.status == "delivered"


def test_unowned_delivery_still_requires_deliver_capability(db, world) -> None:
    order = _unowned_external_order(db)
    _force_status(db, order, "out_for_delivery")

    with pytest.raises(Forbidden) as exc:
        _transition(db, world, order, "delivered", role="lab_engineer")

    assert exc.value.details == {"capability": "canDeliver"}


def test_lab_created_order_without_clinic_can_be_delivered(db, world) -> None:
    order = _create(db, world, role="lab_head")
    assert order.organization_id is None
    _force_status(db, order, "out_for_delivery")

    done = _transition(db, world, order, "delivered", role="lab_logistics")

    assert done.status == "delivered"

@pytest.mark.parametrize(
    ("current", "target"),
    [
        ("new", "ready"),
        ("ready", "ready"),
        ("delivered", "cancelled"),
        ("cancelled", "new"),
        ("shipped", "rework"),
    ],
)
def test_structurally_invalid_transition(db, world, current, target) -> None:
    order = _create(db, world)
    _force_status(db, order, current)

    with pytest.raises(InvalidTransition) as exc:
        _transition(db, world, order, target)

    assert exc.value.details == {"from": current, "to": target}


def test_cancel_from_non_terminal_state(db, world) -> None:
    order = _create(db, world)
    _force_status(db, order, "shipped")

    cancelled = _transition(db, world, order, "cancelled", notes="patient withdrew")

    assert cancelled.status == "cancelled"
    assert cancelled.notes == "patient withdrew"


def test_unknown_target_status_is_validation_error(db, world) -> None:
    order = _create(db, world)

    with pytest.raises(ValidationError):
        _transition(db, world, order, "teleported")


def test_stale_client_version_is_a_conflict(db, world) -> None:
    order = _create(db, world, is_urgent=True)

    with pytest.raises(Conflict) as exc:
        _transition(db, world, order, "in_production", expected_version=order.version + 5)

    assert exc.value.http_status == 409
    assert db.get(Order, order.id).status == "new"


def test_payment_moves_freely_and_is_idempotent(db, world) -> None:
    order = _create(db, world)
    _force_status(db, order, "delivered")
    accountant = world.users["lab_accountant"]

    for value in ("paid", "unpaid", "partial", "partial"):
        updated = update_payment_status_use_case(
            db=db,
            order_number=order.order_number,
            payment_status=value,
            current_user=accountant,
            now=T0,
        )
        assert updated.payment_status == value

    assert updated.status == "delivered"
    assert _actions(db, order).count("order_payment_changed") == 3


def test_payment_change_requires_capability(db, world) -> None:
    order = _create(db, world)

    with pytest.raises(Forbidden):
        update_payment_status_use_case(
            db=db,
            order_number=order.order_number,
            payment_status="paid",
            current_user=world.users["optic_manager"],
            now=T0,
        )
