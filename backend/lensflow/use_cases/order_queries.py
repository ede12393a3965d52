"""Read-side order use-cases: list, detail, board, payments, history."""
from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from ..domain_errors import Forbidden
from ..models import AuditEvent, Order, User
from ..security import apply_order_visibility_scope, require_capability
from ..services.edit_window import as_utc
from ..services.order_response_builder import order_to_response, orders_to_board, payment_to_response
from ..services.order_state import parse_order_status, parse_payment_status
from ..services.permissions import Capability, resolve_capabilities
from .order_lifecycle import get_visible_order_or_404

_PAYMENT_ACTIONS = frozenset({"order_payment_changed"})


def _visible_orders(
    *,
    db: Session,
    current_user: User,
    status: str | None = None,
    organization_id: UUID | None = None,
) -> list[Order]:
    query = db.query(Order).options(selectinload(Order.defects))
    query = apply_order_visibility_scope(query, current_user)
    if status:
        query = query.filter(Order.status == parse_order_status(status).value)
    if organization_id is not None:
        query = query.filter(Order.organization_id == organization_id)
    return query.order_by(Order.created_at.desc()).all()


def list_orders_use_case(
    *,
    db: Session,
    current_user: User,
    now: datetime,
    status: str | None = None,
    organization_id: UUID | None = None,
) -> list[dict[str, Any]]:
    """Full projections for board/ordering roles; accountants get the payment projection."""
    permissions = resolve_capabilities(current_user.sub_role)
    orders = _visible_orders(db=db, current_user=current_user, status=status, organization_id=organization_id)

    if permissions[Capability.VIEW_KANBAN.value] or permissions[Capability.CREATE_ORDERS.value]:
        return [order_to_response(order, permissions=permissions, now=now) for order in orders]
    if permissions[Capability.VIEW_PAYMENTS.value]:
        return [payment_to_response(order, permissions=permissions) for order in orders]
    raise Forbidden("Permission denied: order list not available", code="CAPABILITY_REQUIRED")


def get_order_use_case(*, db: Session, order_number: str, current_user: User, now: datetime) -> dict[str, Any]:
    order = get_visible_order_or_404(db=db, order_number=order_number, current_user=current_user)
    return order_to_response(order, permissions=resolve_capabilities(current_user.sub_role), now=now)


def order_board_use_case(*, db: Session, current_user: User, now: datetime) -> dict[str, list[dict[str, Any]]]:
    require_capability(current_user, Capability.VIEW_KANBAN)
    orders = _visible_orders(db=db, current_user=current_user)
    return orders_to_board(orders, permissions=resolve_capabilities(current_user.sub_role), now=now)


def list_payments_use_case(
    *,
    db: Session,
    current_user: User,
    payment_status: str | None = None,
) -> list[dict[str, Any]]:
    require_capability(current_user, Capability.VIEW_PAYMENTS)
    permissions = resolve_capabilities(current_user.sub_role)
    wanted = parse_payment_status(payment_status).value if payment_status else None
    return [
        payment_to_response(order, permissions=permissions)
        for order in _visible_orders(db=db, current_user=current_user)
        if wanted is None or order.payment_status == wanted
    ]


def order_history_use_case(*, db: Session, order_number: str, current_user: User) -> list[dict[str, Any]]:
    """Audit trail of one order, oldest first."""
    order = get_visible_order_or_404(db=db, order_number=order_number, current_user=current_user)
    can_view_payments = resolve_capabilities(current_user.sub_role)[Capability.VIEW_PAYMENTS.value]

    events = (
        db.query(AuditEvent)
        .filter(AuditEvent.order_id == order.id)
        .order_by(AuditEvent.created_at.asc())
        .all()
    )
    history: list[dict[str, Any]] = []
    for event in events:
        if event.action in _PAYMENT_ACTIONS and not can_view_payments:
            continue
        created_at = as_utc(event.created_at)
        history.append(
            {
                "id": str(event.id),
                "action": event.action,
                "entity_type": event.entity_type,
                "entity_id": event.entity_id,
                "user_name": event.user_name,
                "details": event.details or {},
                "created_at": created_at.isoformat() if created_at else None,
            }
        )
    return history
