"""External ordering-system bridge (static API key)."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..auth import require_external_api_key
from ..celery_app import enqueue_order_mirror
from ..database import get_db
from ..schemas import ExternalOrderCreate, ExternalOrderCreated
from ..services.edit_window import now_utc
from ..use_cases.external_orders import (
    DEFAULT_LIST_LIMIT,
    ingest_external_order_use_case,
    list_external_counterparties_use_case,
    list_external_orders_use_case,
)

router = APIRouter(
    prefix="/external",
    tags=["external"],
    dependencies=[Depends(require_external_api_key)],
)


@router.post("/orders", response_model=ExternalOrderCreated, status_code=status.HTTP_201_CREATED)
def create_external_order(data: ExternalOrderCreate, db: Session = Depends(get_db)):
    """Create an order from the external ordering system."""
    created = ingest_external_order_use_case(db=db, data=data, now=now_utc())
    enqueue_order_mirror(created["order_id"])
    return created


@router.get("/orders")
def list_external_orders(
    external_order_id: Optional[str] = None,
    order_id: Optional[str] = None,
    clinic_name: Optional[str] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    include_first_party: bool = False,
    limit: int = Query(DEFAULT_LIST_LIMIT, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return list_external_orders_use_case(
        db=db,
        external_order_id=external_order_id,
        order_id=order_id,
        clinic_name=clinic_name,
        status=status_filter,
        include_first_party=include_first_party,
        limit=limit,
    )


@router.get("/counterparties")
def list_external_counterparties(db: Session = Depends(get_db)):
    return list_external_counterparties_use_case(db=db)
