"""Inbound bridge for the third-party ordering system."""
from __future__ import annotations

import logging
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping

from sqlalchemy.orm import Session

from ..domain_errors import ValidationError
from ..models import Order, Organization
from ..schemas import ExternalOrderCreate
from ..services.edit_window import as_utc
from ..services.order_state import OrderStatus
from .order_lifecycle import NewOrderRequest, create_order

logger = logging.getLogger(__name__)

EXTERNAL_SOURCE = "external"
EXTERNAL_NOTES_PREFIX = "[External]"
DEFAULT_LIST_LIMIT = 100

# Internal -> external vocabulary. Kept explicit so new internal states must be mapped here.
EXTERNAL_STATUS_BY_INTERNAL: Mapping[OrderStatus, str] = MappingProxyType(
    {
        OrderStatus.NEW: "new",
        OrderStatus.IN_PRODUCTION: "in_production",
        OrderStatus.READY: "ready",
        OrderStatus.REWORK: "rework",
        OrderStatus.SHIPPED: "shipped",
        OrderStatus.OUT_FOR_DELIVERY: "out_for_delivery",
        OrderStatus.DELIVERED: "delivered",
        OrderStatus.CANCELLED: "cancelled",
    }
)
INTERNAL_STATUS_BY_EXTERNAL: Mapping[str, OrderStatus] = MappingProxyType(
    {external: internal for internal, external in EXTERNAL_STATUS_BY_INTERNAL.items()}
)


def to_external_status(status: str | OrderStatus) -> str:
    return EXTERNAL_STATUS_BY_INTERNAL[OrderStatus(status)]


def from_external_status(value: str) -> OrderStatus:
    try:
        return INTERNAL_STATUS_BY_EXTERNAL[value]
    except KeyError:
        raise ValidationError(
            f"Unknown external status '{value}'",
            code="UNKNOWN_EXTERNAL_STATUS",
            details={"allowed": sorted(INTERNAL_STATUS_BY_EXTERNAL)},
        ) from None


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def resolve_clinic_by_name(db: Session, clinic_name: str | None) -> Organization | None:
    """Case-insensitive substring match against active clinics; first by name wins."""
    name = (clinic_name or "").strip()
    if not name:
        return None
    return (
        db.query(Organization)
        .filter(
            Organization.kind == "clinic",
            Organization.is_active.is_(True),
            Organization.name.ilike(f"%{_escape_like(name)}%", escape="\\"),
        )
        .order_by(Organization.name.asc())
        .first()
    )


def _external_notes(notes: str | None) -> str:
    return f"{EXTERNAL_NOTES_PREFIX} {notes}" if notes else EXTERNAL_NOTES_PREFIX


def ingest_external_order_use_case(*, db: Session, data: ExternalOrderCreate, now: datetime) -> dict[str, Any]:
    organization = resolve_clinic_by_name(db, data.clinic_name)
    if organization is None and data.clinic_name:
        logger.info("External order: no clinic matches '%s', keeping name as text", data.clinic_name)

    order = create_order(
        db,
        request=NewOrderRequest(
            patient=data.patient,
            config=data.config,
            is_urgent=data.is_urgent,
            organization=organization,
            created_by=None,
            clinic_name=organization.name if organization is not None else data.clinic_name,
            doctor_name=data.creator_name,
            doctor_email=data.creator_email,
            company=data.company,
            tax_id=data.tax_id,
            delivery_method=data.delivery_method,
            delivery_address=data.delivery_address,
            notes=_external_notes(data.notes),
            source=EXTERNAL_SOURCE,
            external_id=data.external_order_id,
            audit_user_name=data.creator_name or "external",
            extra_audit={"external_order_id": data.external_order_id},
        ),
        now=now,
    )
    return {
        "success": True,
        "order_id": order.order_number,
        "external_order_id": order.external_id,
        "status": to_external_status(order.status),
        "total_price": order.total_price,
        "edit_deadline": as_utc(order.edit_deadline),
        "created_at": as_utc(order.created_at),
    }


def _external_order_row(order: Order) -> dict[str, Any]:
    created_at = as_utc(order.created_at)
    updated_at = as_utc(order.updated_at)
    return {
        "order_id": order.order_number,
        "external_order_id": order.external_id,
        "status": to_external_status(order.status),
        "payment_status": order.payment_status,
        "patient": {
            "name": order.patient_name,
            "phone": order.patient_phone,
            "email": order.patient_email,
        },
        "clinic_name": order.clinic_name,
        "doctor_name": order.doctor_name,
        "is_urgent": bool(order.is_urgent),
        "total_price": order.total_price,
        "tracking_number": order.tracking_number,
        "created_at": created_at.isoformat() if created_at else None,
        "updated_at": updated_at.isoformat() if updated_at else None,
    }


def list_external_orders_use_case(
    *,
    db: Session,
    external_order_id: str | None = None,
    order_id: str | None = None,
    clinic_name: str | None = None,
    status: str | None = None,
    include_first_party: bool = False,
    limit: int = DEFAULT_LIST_LIMIT,
) -> list[dict[str, Any]]:
    query = db.query(Order)
    if not include_first_party:
        query = query.filter(Order.source == EXTERNAL_SOURCE)
    if external_order_id:
        query = query.filter(Order.external_id == external_order_id)
    if order_id:
        query = query.filter(Order.order_number == order_id)
    if clinic_name:
        query = query.filter(Order.clinic_name.ilike(f"%{_escape_like(clinic_name)}%", escape="\\"))
    if status:
        query = query.filter(Order.status == from_external_status(status).value)

    orders = query.order_by(Order.created_at.desc()).limit(max(1, min(int(limit), 500))).all()
    return [_external_order_row(order) for order in orders]


def list_external_counterparties_use_case(*, db: Session) -> list[dict[str, Any]]:
    clinics = (
        db.query(Organization)
        .filter(Organization.kind == "clinic", Organization.is_active.is_(True))
        .order_by(Organization.name.asc())
        .all()
    )
    return [
        {
            "id": str(clinic.id),
            "name": clinic.name,
            "city": clinic.city,
            "tax_id": clinic.tax_id,
            "discount_percent": float(clinic.discount_percent),
        }
        for clinic in clinics
    ]
