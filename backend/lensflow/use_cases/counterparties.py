"""Counterparty aggregates (clinics, doctors) and discount management."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from ..domain_errors import NotFound, ValidationError
from ..models import Order, Organization, User
from ..security import apply_order_visibility_scope, require_capability
from ..services.edit_window import as_utc
from ..services.order_state import OrderStatus, PaymentStatus
from ..services.permissions import Capability, SubRole, is_lab_role
from .order_lifecycle import commit_or_raise, record_audit

logger = logging.getLogger(__name__)


def _new_bucket(**identity: Any) -> dict[str, Any]:
    return {**identity, "orders": 0, "revenue": 0, "unpaid": 0, "last_order_at": None}


def _accumulate(bucket: dict[str, Any], order: Order) -> None:
    bucket["orders"] += 1
    if order.status != OrderStatus.CANCELLED.value:
        bucket["revenue"] += int(order.total_price or 0)
        if order.payment_status != PaymentStatus.PAID.value:
            bucket["unpaid"] += int(order.total_price or 0)
    created_at = as_utc(order.created_at)
    if created_at and (bucket["last_order_at"] is None or created_at > bucket["last_order_at"]):
        bucket["last_order_at"] = created_at


def _finalize(buckets: dict[Any, dict[str, Any]]) -> list[dict[str, Any]]:
    rows = sorted(buckets.values(), key=lambda row: (-row["orders"], row["name"] or ""))
    for row in rows:
        if row["last_order_at"] is not None:
            row["last_order_at"] = row["last_order_at"].isoformat()
    return rows


def list_counterparties_use_case(*, db: Session, current_user: User) -> dict[str, list[dict[str, Any]]]:
    """Derived read-only view; nothing here is stored."""
    require_capability(current_user, Capability.VIEW_STATS)

    orders = apply_order_visibility_scope(db.query(Order), current_user).all()

    clinics_query = db.query(Organization).filter(Organization.kind == "clinic")
    if not is_lab_role(current_user.sub_role):
        clinics_query = clinics_query.filter(Organization.id == current_user.organization_id)
    clinics: dict[Any, dict[str, Any]] = {
        org.id: _new_bucket(
            id=str(org.id),
            name=org.name,
            city=org.city,
            discount_percent=float(org.discount_percent),
        )
        for org in clinics_query.all()
    }

    doctor_users: dict[UUID, User] = {}
    creator_ids = {order.created_by_id for order in orders if order.created_by_id is not None}
    if creator_ids:
        doctor_users = {user.id: user for user in db.query(User).filter(User.id.in_(creator_ids)).all()}

    doctors: dict[Any, dict[str, Any]] = {}
    for order in orders:
        if order.organization_id in clinics:
            _accumulate(clinics[order.organization_id], order)

        if order.created_by_id is not None:
            user = doctor_users.get(order.created_by_id)
            key: Any = order.created_by_id
            identity = {
                "id": str(order.created_by_id),
                "name": order.doctor_name or (user.full_name if user else None),
                "sub_role": user.sub_role if user else None,
                "discount_percent": user.discount_percent if user else None,
            }
        else:
            # External orders carry only a free-text doctor name.
            key = ("name", (order.doctor_name or "").strip().lower())
            identity = {"id": None, "name": order.doctor_name, "sub_role": None, "discount_percent": None}
        bucket = doctors.setdefault(key, _new_bucket(**identity))
        bucket["clinic_name"] = order.clinic_name
        _accumulate(bucket, order)

    return {"clinics": _finalize(clinics), "doctors": _finalize(doctors)}


DETAIL_ORDER_LIMIT = 100


def _detail_order_row(order: Order) -> dict[str, Any]:
    created_at = as_utc(order.created_at)
    return {
        "order_id": order.order_number,
        "doctor": order.doctor_name or "",
        "patient": order.patient_name or "",
        "clinic": order.clinic_name or "",
        "total_price": order.total_price,
        "payment_status": order.payment_status,
        "status": order.status,
        "is_urgent": bool(order.is_urgent),
        "created_at": created_at.isoformat() if created_at else None,
    }


def _staff_row(user: User) -> dict[str, Any]:
    return {
        "id": str(user.id),
        "full_name": user.full_name,
        "email": user.email,
        "phone": user.phone,
        "sub_role": user.sub_role,
    }


def counterparty_detail_use_case(
    *,
    db: Session,
    party_id: UUID,
    party_type: str,
    current_user: User,
    limit: int = DETAIL_ORDER_LIMIT,
) -> dict[str, Any]:
    """One clinic or doctor with its staff and latest visible orders."""
    require_capability(current_user, Capability.VIEW_STATS)
    orders_query = apply_order_visibility_scope(db.query(Order), current_user)
    own_scope_only = not is_lab_role(current_user.sub_role)

    if party_type == "clinic":
        clinic = db.query(Organization).filter(
            Organization.id == party_id,
            Organization.kind == "clinic",
        ).first()
        if not clinic or (own_scope_only and clinic.id != current_user.organization_id):
            raise NotFound("Clinic not found", code="CLINIC_NOT_FOUND")
        staff = (
            db.query(User)
            .filter(User.organization_id == clinic.id, User.is_active.is_(True))
            .order_by(User.full_name.asc())
            .all()
        )
        data = {
            "id": str(clinic.id),
            "name": clinic.name,
            "city": clinic.city,
            "tax_id": clinic.tax_id,
            "phone": clinic.phone,
            "email": clinic.email,
            "discount_percent": float(clinic.discount_percent),
            "is_active": bool(clinic.is_active),
            "staff": [_staff_row(user) for user in staff],
        }
        orders_query = orders_query.filter(Order.organization_id == clinic.id)
    elif party_type == "doctor":
        doctor = db.query(User).filter(User.id == party_id).first()
        if not doctor or (own_scope_only and doctor.organization_id != current_user.organization_id):
            raise NotFound("Doctor not found", code="DOCTOR_NOT_FOUND")
        data = {
            **_staff_row(doctor),
            "discount_percent": doctor.discount_percent,
            "organization": (
                {"id": str(doctor.organization.id), "name": doctor.organization.name}
                if doctor.organization is not None
                else None
            ),
        }
        orders_query = orders_query.filter(Order.created_by_id == doctor.id)
    else:
        raise ValidationError(
            "Counterparty type must be clinic or doctor",
            code="INVALID_COUNTERPARTY_TYPE",
            details={"type": party_type},
        )

    orders = orders_query.order_by(Order.created_at.desc()).limit(limit).all()
    return {"type": party_type, "data": data, "orders": [_detail_order_row(order) for order in orders]}


def _validate_discount(discount_percent: float) -> float:
    value = float(discount_percent)
    if not 0 <= value <= 100:
        raise ValidationError(
            "Discount percent must be between 0 and 100",
            code="DISCOUNT_OUT_OF_RANGE",
            details={"discount_percent": value},
        )
    return value


def update_clinic_discount_use_case(
    *,
    db: Session,
    organization_id: UUID,
    discount_percent: float,
    current_user: User,
    now: datetime,
) -> Organization:
    """Affects only orders priced after this change."""
    require_capability(current_user, Capability.EDIT_DISCOUNTS)
    value = _validate_discount(discount_percent)

    clinic = db.query(Organization).filter(
        Organization.id == organization_id,
        Organization.kind == "clinic",
    ).first()
    if not clinic:
        raise NotFound("Clinic not found", code="CLINIC_NOT_FOUND")

    old_value = clinic.discount_percent
    clinic.discount_percent = value
    record_audit(
        db,
        action="discount_changed",
        entity_type="organization",
        entity_id=str(clinic.id),
        user=current_user,
        at=now,
        details={"oldDiscount": old_value, "newDiscount": value},
    )
    commit_or_raise(db)
    logger.info("Clinic %s discount: %s -> %s", clinic.id, old_value, value)
    return clinic


def update_doctor_discount_use_case(
    *,
    db: Session,
    user_id: UUID,
    discount_percent: float,
    current_user: User,
    now: datetime,
) -> User:
    require_capability(current_user, Capability.EDIT_DISCOUNTS)
    value = _validate_discount(discount_percent)

    doctor = db.query(User).filter(User.id == user_id, User.sub_role == SubRole.DOCTOR.value).first()
    if not doctor:
        raise NotFound("Doctor not found", code="DOCTOR_NOT_FOUND")

    old_value = doctor.discount_percent
    doctor.discount_percent = value
    record_audit(
        db,
        action="discount_changed",
        entity_type="user",
        entity_id=str(doctor.id),
        user=current_user,
        at=now,
        details={"oldDiscount": old_value, "newDiscount": value},
    )
    commit_or_raise(db)
    logger.info("Doctor %s discount: %s -> %s", doctor.id, old_value, value)
    return doctor
