"""Product catalog: listing with price redaction, management by lab leads."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from ..domain_errors import Conflict, NotFound
from ..models import Product, User
from ..schemas import ProductCreate, ProductUpdate
from ..security import require_capability
from ..services.permissions import Capability, has_capability
from .order_lifecycle import commit_or_raise

logger = logging.getLogger(__name__)


def product_to_response(product: Product, *, with_price: bool) -> dict[str, Any]:
    payload = {
        "id": str(product.id),
        "name": product.name,
        "category": product.category,
        "characteristic": product.characteristic,
        "sku": product.sku,
        "description": product.description,
        "unit": product.unit,
        "sort_order": product.sort_order,
        "is_active": bool(product.is_active),
    }
    if with_price:
        payload["price"] = product.price
    return payload


def _get_product_or_404(*, db: Session, product_id: UUID) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFound("Product not found", code="PRODUCT_NOT_FOUND")
    return product


def _ensure_sku_free(*, db: Session, sku: str | None, product_id: UUID | None = None) -> None:
    if not sku:
        return
    query = db.query(Product).filter(Product.sku == sku)
    if product_id is not None:
        query = query.filter(Product.id != product_id)
    if query.first():
        raise Conflict("Product with this SKU already exists", code="SKU_EXISTS", details={"sku": sku})


def _commit_product(db: Session, sku: str | None) -> None:
    try:
        commit_or_raise(db)
    except Conflict as error:
        # Unique index race between the pre-check and the insert.
        if error.code != "CONSTRAINT_VIOLATION":
            raise
        raise Conflict("Product with this SKU already exists", code="SKU_EXISTS", details={"sku": sku}) from error


def list_catalog_use_case(
    *,
    db: Session,
    current_user: User,
    category: str | None = None,
    include_inactive: bool = False,
) -> list[dict[str, Any]]:
    query = db.query(Product)
    if category:
        query = query.filter(Product.category == category)
    if not (include_inactive and has_capability(current_user.sub_role, Capability.MANAGE_CATALOG)):
        query = query.filter(Product.is_active.is_(True))
    products = query.order_by(Product.sort_order.asc(), Product.name.asc()).all()

    with_price = has_capability(current_user.sub_role, Capability.VIEW_PRICES)
    return [product_to_response(product, with_price=with_price) for product in products]


def create_product_use_case(*, db: Session, data: ProductCreate, current_user: User) -> Product:
    require_capability(current_user, Capability.MANAGE_CATALOG)
    _ensure_sku_free(db=db, sku=data.sku)

    product = Product(**data.model_dump())
    db.add(product)
    _commit_product(db, data.sku)
    logger.info("Product %s created (%s, price=%s)", product.id, product.name, product.price)
    return product


def update_product_use_case(
    *,
    db: Session,
    product_id: UUID,
    data: ProductUpdate,
    current_user: User,
) -> Product:
    """Price edits apply to future pricing only; existing orders keep their snapshot."""
    require_capability(current_user, Capability.MANAGE_CATALOG)
    product = _get_product_or_404(db=db, product_id=product_id)

    changes = data.model_dump(exclude_unset=True)
    if "sku" in changes:
        _ensure_sku_free(db=db, sku=changes["sku"], product_id=product.id)
    for name, value in changes.items():
        setattr(product, name, value)
    _commit_product(db, product.sku)
    return product


def deactivate_product_use_case(*, db: Session, product_id: UUID, current_user: User, now: datetime) -> Product:
    """Soft delete."""
    require_capability(current_user, Capability.MANAGE_CATALOG)
    product = _get_product_or_404(db=db, product_id=product_id)
    if not product.is_active:
        return product
    product.is_active = False
    product.updated_at = now
    commit_or_raise(db)
    logger.info("Product %s deactivated", product.id)
    return product
