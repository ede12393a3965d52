"""Catalog endpoints."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth import PermissionChecker, get_current_user
from ..database import get_db
from ..models import User
from ..schemas import ProductCreate, ProductUpdate
from ..services.edit_window import now_utc
from ..services.permissions import Capability
from ..use_cases.catalog import (
    create_product_use_case,
    deactivate_product_use_case,
    list_catalog_use_case,
    product_to_response,
    update_product_use_case,
)

router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.get("")
def list_catalog(
    category: Optional[str] = None,
    include_inactive: bool = False,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Active products; unit prices only for actors allowed to see prices."""
    return list_catalog_use_case(
        db=db,
        current_user=current_user,
        category=category,
        include_inactive=include_inactive,
    )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_product(
    data: ProductCreate,
    current_user: User = Depends(PermissionChecker(Capability.MANAGE_CATALOG)),
    db: Session = Depends(get_db),
):
    product = create_product_use_case(db=db, data=data, current_user=current_user)
    return product_to_response(product, with_price=True)


@router.put("/{product_id}")
def update_product(
    product_id: UUID,
    data: ProductUpdate,
    current_user: User = Depends(PermissionChecker(Capability.MANAGE_CATALOG)),
    db: Session = Depends(get_db),
):
    product = update_product_use_case(db=db, product_id=product_id, data=data, current_user=current_user)
    return product_to_response(product, with_price=True)


@router.delete("/{product_id}")
def delete_product(
    product_id: UUID,
    current_user: User = Depends(PermissionChecker(Capability.MANAGE_CATALOG)),
    db: Session = Depends(get_db),
):
    """Soft delete (product is deactivated, never removed)."""
    product = deactivate_product_use_case(db=db, product_id=product_id, current_user=current_user, now=now_utc())
    return {"success": True, "id": str(product.id), "is_active": bool(product.is_active)}
