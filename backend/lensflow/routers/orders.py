"""Order endpoints."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..celery_app import enqueue_order_mirror
from ..database import get_db
from ..models import User
from ..schemas import (
    DefectArchiveUpdate,
    DefectCreate,
    OrderCreate,
    OrderStatusUpdate,
    OrderUpdate,
    PaymentStatusUpdate,
)
from ..services.edit_window import now_utc
from ..services.order_response_builder import defect_to_response, order_to_response
from ..services.permissions import resolve_capabilities
from ..use_cases.order_defects import add_defect_use_case, set_defect_archived_use_case
from ..use_cases.order_lifecycle import (
    change_order_status_use_case,
    create_order_use_case,
    update_order_use_case,
    update_payment_status_use_case,
)
from ..use_cases.order_queries import (
    get_order_use_case,
    list_orders_use_case,
    list_payments_use_case,
    order_board_use_case,
    order_history_use_case,
)

router = APIRouter(prefix="/orders", tags=["orders"])


def _order_response(order, current_user: User, now):
    return order_to_response(order, permissions=resolve_capabilities(current_user.sub_role), now=now)


@router.get("")
def list_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    organization_id: Optional[UUID] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List orders visible to the current actor."""
    return list_orders_use_case(
        db=db,
        current_user=current_user,
        now=now_utc(),
        status=status_filter,
        organization_id=organization_id,
    )


@router.get("/board")
def get_board(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Kanban board grouped by status."""
    return order_board_use_case(db=db, current_user=current_user, now=now_utc())


@router.get("/payments")
def list_payments(
    payment_status: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return list_payments_use_case(db=db, current_user=current_user, payment_status=payment_status)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_order(
    data: OrderCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a first-party order."""
    now = now_utc()
    order = create_order_use_case(db=db, data=data, current_user=current_user, now=now)
    enqueue_order_mirror(order.order_number)
    return _order_response(order, current_user, now)


@router.get("/{order_number}")
def get_order(
    order_number: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_order_use_case(db=db, order_number=order_number, current_user=current_user, now=now_utc())


@router.patch("/{order_number}")
def update_order(
    order_number: str,
    data: OrderUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Edit patient/config/delivery/notes while the order is editable."""
    now = now_utc()
    order = update_order_use_case(
        db=db,
        order_number=order_number,
        data=data,
        current_user=current_user,
        now=now,
    )
    return _order_response(order, current_user, now)


@router.patch("/{order_number}/status")
def update_order_status(
    order_number: str,
    data: OrderStatusUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    now = now_utc()
    order = change_order_status_use_case(
        db=db,
        order_number=order_number,
        next_status=data.status,
        notes=data.notes,
        expected_version=data.version,
        current_user=current_user,
        now=now,
    )
    return _order_response(order, current_user, now)


@router.patch("/{order_number}/payment")
def update_payment_status(
    order_number: str,
    data: PaymentStatusUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    now = now_utc()
    order = update_payment_status_use_case(
        db=db,
        order_number=order_number,
        payment_status=data.payment_status,
        expected_version=data.version,
        current_user=current_user,
        now=now,
    )
    return _order_response(order, current_user, now)


@router.get("/{order_number}/history")
def get_order_history(
    order_number: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Audit events of one order, oldest first."""
    return order_history_use_case(db=db, order_number=order_number, current_user=current_user)


@router.post("/{order_number}/defects", status_code=status.HTTP_201_CREATED)
def add_defect(
    order_number: str,
    data: DefectCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    defect = add_defect_use_case(
        db=db,
        order_number=order_number,
        qty=data.qty,
        note=data.note,
        current_user=current_user,
        now=now_utc(),
    )
    return defect_to_response(defect)


@router.patch("/{order_number}/defects/{defect_id}/archive")
def archive_defect(
    order_number: str,
    defect_id: str,
    data: Optional[DefectArchiveUpdate] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Set the archived flag, or flip it when no value is sent."""
    defect = set_defect_archived_use_case(
        db=db,
        order_number=order_number,
        defect_id=defect_id,
        archived=data.archived if data is not None else None,
        current_user=current_user,
        now=now_utc(),
    )
    return defect_to_response(defect)
