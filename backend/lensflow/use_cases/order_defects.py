"""Defect recording on orders: add, archive toggle, laboratory feed."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session, contains_eager
from sqlalchemy.orm.attributes import flag_modified

from ..domain_errors import NotFound, ValidationError
from ..models import Order, OrderDefect, User
from ..security import apply_order_visibility_scope, require_capability
from ..services.identifiers import new_defect_id
from ..services.order_response_builder import defect_to_response
from ..services.order_state import DEFECT_STATUSES
from ..services.permissions import Capability
from .order_lifecycle import commit_or_raise, get_visible_order_or_404, record_audit

logger = logging.getLogger(__name__)


def add_defect_use_case(
    *,
    db: Session,
    order_number: str,
    qty: int,
    current_user: User,
    now: datetime,
    note: str | None = None,
) -> OrderDefect:
    """Record a defect batch on an order that is in (or past) production."""
    require_capability(current_user, Capability.ADD_DEFECTS)
    order = get_visible_order_or_404(db=db, order_number=order_number, current_user=current_user)

    if qty is None or int(qty) < 1:
        raise ValidationError("Defect quantity must be at least 1", code="DEFECT_QTY_INVALID")
    if order.status not in {status.value for status in DEFECT_STATUSES}:
        raise ValidationError(
            f"Defects cannot be recorded while the order is '{order.status}'",
            code="DEFECTS_NOT_ALLOWED_IN_STATUS",
            details={"status": order.status},
        )

    defect = OrderDefect(
        id=new_defect_id(now),
        qty=int(qty),
        note=note,
        created_at=now,
        created_by_id=current_user.id,
        archived=False,
    )
    order.defects.append(defect)
    order.updated_at = now
    # Always UPDATE the order row so its version increments even when updated_at is unchanged.
    flag_modified(order, "updated_at")

    record_audit(
        db,
        action="defect_added",
        entity_type="defect",
        entity_id=defect.id,
        order=order,
        user=current_user,
        at=now,
        details={"qty": defect.qty, "note": note},
    )
    commit_or_raise(db)
    logger.info("Defect %s (qty=%s) recorded on order %s", defect.id, defect.qty, order.order_number)
    return defect


def set_defect_archived_use_case(
    *,
    db: Session,
    order_number: str,
    defect_id: str,
    current_user: User,
    now: datetime,
    archived: bool | None = None,
) -> OrderDefect:
    """Set or flip the archived flag. Setting the current value is a no-op."""
    require_capability(current_user, Capability.ADD_DEFECTS)
    order = get_visible_order_or_404(db=db, order_number=order_number, current_user=current_user)

    defect = next((item for item in order.defects if item.id == defect_id), None)
    if defect is None:
        raise NotFound("Defect not found", code="DEFECT_NOT_FOUND", details={"defect_id": defect_id})

    target = (not defect.archived) if archived is None else bool(archived)
    if bool(defect.archived) == target:
        return defect

    defect.archived = target
    order.updated_at = now
    flag_modified(order, "updated_at")
    record_audit(
        db,
        action="defect_archived",
        entity_type="defect",
        entity_id=defect.id,
        order=order,
        user=current_user,
        at=now,
        details={"archived": target},
    )
    commit_or_raise(db)
    return defect


def list_defect_feed_use_case(
    *,
    db: Session,
    current_user: User,
    include_archived: bool = True,
    limit: int = 200,
) -> list[dict[str, Any]]:
    """Newest-first defects across every order visible to the actor."""
    require_capability(current_user, Capability.VIEW_KANBAN)

    query = (
        db.query(OrderDefect)
        .join(OrderDefect.order)
        .options(contains_eager(OrderDefect.order))
    )
    query = apply_order_visibility_scope(query, current_user)
    if not include_archived:
        query = query.filter(OrderDefect.archived.is_(False))
    defects = query.order_by(OrderDefect.created_at.desc(), OrderDefect.id.desc()).limit(limit).all()

    feed: list[dict[str, Any]] = []
    for defect in defects:
        order: Order = defect.order
        item = defect_to_response(defect)
        item.update(
            {
                "order_id": order.order_number,
                "order_status": order.status,
                "clinic_name": order.clinic_name or "",
                "patient_name": order.patient_name,
            }
        )
        feed.append(item)
    return feed
