"""Role-aware read projections of orders.

Price fields are removed (not nulled) for actors without canViewPrices, and
payment status for actors without canViewPayments.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping

from ..models import Order, OrderDefect
from .edit_window import as_utc, is_editable, is_production_eligible, remaining_edit_time
from .order_state import OrderStatus
from .permissions import Capability

PRICE_FIELDS: tuple[str, ...] = (
    "base_price",
    "discount_percent",
    "discount_amount",
    "urgent_surcharge",
    "total_price",
)


def _iso(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def defect_to_response(defect: OrderDefect) -> dict[str, Any]:
    return {
        "id": defect.id,
        "qty": defect.qty,
        "note": defect.note,
        "created_at": _iso(defect.created_at),
        "archived": bool(defect.archived),
    }


def defect_total(order: Order) -> int:
    return sum(int(defect.qty or 0) for defect in order.defects or [])


def order_to_response(order: Order, *, permissions: Mapping[str, bool], now: datetime) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "order_id": order.order_number,
        "status": order.status,
        "is_urgent": bool(order.is_urgent),
        "version": order.version,
        "meta": {
            "organization_id": str(order.organization_id) if order.organization_id else None,
            "clinic_name": order.clinic_name or "",
            "doctor": order.doctor_name or "",
            "created_by_id": str(order.created_by_id) if order.created_by_id else None,
            "created_at": _iso(order.created_at),
            "updated_at": _iso(order.updated_at),
        },
        "patient": {
            "name": order.patient_name,
            "phone": order.patient_phone,
            "email": order.patient_email,
            "notes": order.patient_notes,
        },
        "config": order.lens_config,
        "company": order.company,
        "tax_id": order.tax_id,
        "delivery_method": order.delivery_method,
        "delivery_address": order.delivery_address,
        "doctor_email": order.doctor_email,
        "notes": order.notes,
        "source": order.source,
        "external_id": order.external_id,
        "tracking_number": order.tracking_number,
        "edit_deadline": _iso(order.edit_deadline),
        "editable": is_editable(status=order.status, edit_deadline=order.edit_deadline, now=now),
        "edit_seconds_remaining": int(
            remaining_edit_time(edit_deadline=order.edit_deadline, now=now).total_seconds()
        ),
        "production_eligible": is_production_eligible(
            is_urgent=bool(order.is_urgent),
            edit_deadline=order.edit_deadline,
            now=now,
        ),
        "production_started_at": _iso(order.production_started_at),
        "production_completed_at": _iso(order.production_completed_at),
        "shipped_at": _iso(order.shipped_at),
        "delivered_at": _iso(order.delivered_at),
        "defects": [defect_to_response(defect) for defect in order.defects or []],
        "defect_total": defect_total(order),
    }
    if permissions.get(Capability.VIEW_PRICES.value, False):
        for field in PRICE_FIELDS:
            payload[field] = getattr(order, field)
    if permissions.get(Capability.VIEW_PAYMENTS.value, False):
        payload["payment_status"] = order.payment_status
    return payload


def payment_to_response(order: Order, *, permissions: Mapping[str, bool]) -> dict[str, Any]:
    """Flat row for the payment list (accountants see this instead of the board)."""
    payload: dict[str, Any] = {
        "order_id": order.order_number,
        "clinic_name": order.clinic_name or "",
        "doctor": order.doctor_name or "",
        "patient_name": order.patient_name,
        "status": order.status,
        "payment_status": order.payment_status,
        "is_urgent": bool(order.is_urgent),
        "created_at": _iso(order.created_at),
    }
    if permissions.get(Capability.VIEW_PRICES.value, False):
        payload["total_price"] = order.total_price
    return payload


def orders_to_board(
    orders: Iterable[Order],
    *,
    permissions: Mapping[str, bool],
    now: datetime,
) -> dict[str, list[dict[str, Any]]]:
    board: dict[str, list[dict[str, Any]]] = {status.value: [] for status in OrderStatus}
    for order in orders:
        board.setdefault(order.status, []).append(order_to_response(order, permissions=permissions, now=now))
    return board
