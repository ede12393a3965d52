"""Order status machine: transition table, capability per target, timestamps."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from ..domain_errors import InvalidTransition, ValidationError
from .permissions import Capability


class OrderStatus(str, Enum):
    NEW = "new"
    IN_PRODUCTION = "in_production"
    READY = "ready"
    REWORK = "rework"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})
DEFECT_STATUSES: frozenset[OrderStatus] = frozenset(
    {OrderStatus.IN_PRODUCTION, OrderStatus.READY, OrderStatus.REWORK}
)

_FORWARD_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.NEW: frozenset({OrderStatus.IN_PRODUCTION}),
    OrderStatus.IN_PRODUCTION: frozenset({OrderStatus.READY}),
    OrderStatus.READY: frozenset({OrderStatus.SHIPPED, OrderStatus.REWORK}),
    OrderStatus.REWORK: frozenset({OrderStatus.IN_PRODUCTION}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.OUT_FOR_DELIVERY}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    status: targets | ({OrderStatus.CANCELLED} if status not in TERMINAL_STATUSES else frozenset())
    for status, targets in _FORWARD_TRANSITIONS.items()
}

# Keyed by target only, so permission can be decided before the current state is consulted.
# None means the owning clinic actor confirms (no lab capability involved).
TARGET_CAPABILITY: dict[OrderStatus, Capability | None] = {
    OrderStatus.NEW: Capability.CHANGE_STATUS,
    OrderStatus.IN_PRODUCTION: Capability.CHANGE_STATUS,
    OrderStatus.READY: Capability.MARK_READY,
    OrderStatus.REWORK: Capability.MARK_REWORK,
    OrderStatus.SHIPPED: Capability.SHIP,
    OrderStatus.OUT_FOR_DELIVERY: Capability.DELIVER,
    OrderStatus.DELIVERED: None,
    OrderStatus.CANCELLED: Capability.CHANGE_STATUS,
}


def parse_order_status(value: str | OrderStatus | None) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus((value or "").strip().lower())
    except ValueError as error:
        raise ValidationError(
            f"Unknown order status: {value}",
            code="UNKNOWN_ORDER_STATUS",
            details={"status": value},
        ) from error


def parse_payment_status(value: str | PaymentStatus | None) -> PaymentStatus:
    if isinstance(value, PaymentStatus):
        return value
    try:
        return PaymentStatus((value or "").strip().lower())
    except ValueError as error:
        raise ValidationError(
            f"Invalid payment status: {value}",
            code="INVALID_PAYMENT_STATUS",
            details={"payment_status": value},
        ) from error


def is_terminal_status(status: str | OrderStatus) -> bool:
    return parse_order_status(status) in TERMINAL_STATUSES


def required_capability(target: OrderStatus) -> Capability | None:
    return TARGET_CAPABILITY[target]


def validate_status_transition(*, current_status: str | OrderStatus, next_status: OrderStatus) -> OrderStatus:
    current = parse_order_status(current_status)
    if next_status not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(
            f"Invalid order status transition: {current.value} -> {next_status.value}",
            details={"from": current.value, "to": next_status.value},
        )
    return next_status


def apply_status_timestamps(
    *,
    next_status: OrderStatus,
    production_started_at: datetime | None,
    production_completed_at: datetime | None,
    shipped_at: datetime | None,
    delivered_at: datetime | None,
    at: datetime,
) -> dict[str, datetime | None]:
    """First entry into a status stamps it; re-entry (rework loop) keeps the original value."""
    updated = {
        "production_started_at": production_started_at,
        "production_completed_at": production_completed_at,
        "shipped_at": shipped_at,
        "delivered_at": delivered_at,
    }
    field = {
        OrderStatus.IN_PRODUCTION: "production_started_at",
        OrderStatus.READY: "production_completed_at",
        OrderStatus.SHIPPED: "shipped_at",
        OrderStatus.DELIVERED: "delivered_at",
    }.get(next_status)
    if field and updated[field] is None:
        updated[field] = at
    return updated
