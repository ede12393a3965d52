"""Order aggregate use-cases: creation, edits, status transitions, payment."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..config import settings
from ..domain_errors import (
    Conflict,
    EditWindowClosed,
    Forbidden,
    NotFound,
    UpstreamUnavailable,
    ValidationError,
)
from ..models import AuditEvent, Order, Organization, Product, User
from ..schemas import ExternalPatient, LensConfig, OrderCreate, OrderUpdate, PatientIn
from ..security import can_view_order, has_owning_party, is_owning_clinic_actor, require_capability
from ..services.edit_window import compute_edit_deadline, is_editable, is_production_eligible
from ..services.identifiers import new_order_number, new_tracking_number
from ..services.order_state import (
    OrderStatus,
    apply_status_timestamps,
    parse_order_status,
    parse_payment_status,
    required_capability,
    validate_status_transition,
)
from ..services.permissions import (
    Capability,
    is_clinic_role,
    is_independent_doctor,
    is_lab_role,
)
from ..services.pricing import PriceBreakdown, calculate_price, eye_lines_from_config

logger = logging.getLogger(__name__)


@dataclass
class NewOrderRequest:
    """Normalized creation input shared by first-party and external entry points."""

    patient: PatientIn | ExternalPatient
    config: LensConfig
    is_urgent: bool = False
    organization: Organization | None = None
    created_by: User | None = None
    clinic_name: str | None = None
    doctor_name: str | None = None
    doctor_email: str | None = None
    company: str | None = None
    tax_id: str | None = None
    delivery_method: str | None = None
    delivery_address: str | None = None
    notes: str | None = None
    source: str = "first_party"
    external_id: str | None = None
    audit_user_name: str | None = None
    extra_audit: dict[str, Any] = field(default_factory=dict)


def edit_window() -> timedelta:
    return timedelta(minutes=int(settings.ORDER_EDIT_WINDOW_MINUTES))


def commit_or_raise(db: Session) -> None:
    """Commit the unit of work, mapping persistence failures to domain errors."""
    try:
        db.commit()
    except StaleDataError as error:
        db.rollback()
        logger.warning("Concurrent order modification detected: %s", error)
        raise Conflict(
            "Order was modified concurrently; re-read and retry",
            code="ORDER_VERSION_CONFLICT",
        ) from error
    except IntegrityError as error:
        db.rollback()
        logger.warning("Constraint violation on commit: %s", error.orig)
        raise Conflict("Change violates a uniqueness constraint", code="CONSTRAINT_VIOLATION") from error
    except SQLAlchemyError as error:
        db.rollback()
        logger.error("Persistence failure while committing order change", exc_info=True)
        raise UpstreamUnavailable("Order storage is unavailable", code="PERSISTENCE_UNAVAILABLE") from error


def record_audit(
    db: Session,
    *,
    action: str,
    entity_type: str,
    entity_id: str,
    at: datetime,
    order: Order | None = None,
    user: User | None = None,
    user_name: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    db.add(
        AuditEvent(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            order_id=order.id if order is not None else None,
            user_id=user.id if user is not None else None,
            user_name=user_name or (user.full_name if user is not None else None),
            details=details or {},
            created_at=at,
        )
    )


def get_order_or_404(*, db: Session, order_number: str) -> Order:
    order = db.query(Order).filter(Order.order_number == order_number).first()
    if not order:
        raise NotFound("Order not found", code="ORDER_NOT_FOUND", details={"order_id": order_number})
    return order


def get_visible_order_or_404(*, db: Session, order_number: str, current_user: User) -> Order:
    """Invisible orders are reported exactly like missing ones."""
    order = get_order_or_404(db=db, order_number=order_number)
    if not can_view_order(order, current_user):
        raise NotFound("Order not found", code="ORDER_NOT_FOUND", details={"order_id": order_number})
    return order


def ensure_expected_version(order: Order, expected_version: int | None) -> None:
    if expected_version is not None and expected_version != order.version:
        raise Conflict(
            "Order has changed since it was read",
            code="ORDER_VERSION_CONFLICT",
            details={"expected_version": expected_version, "current_version": order.version},
        )


def load_lens_catalog(db: Session) -> dict[str, int]:
    """characteristic -> unit price from active lens products (lowest sort order wins)."""
    try:
        products = (
            db.query(Product)
            .filter(
                Product.category == "lens",
                Product.is_active.is_(True),
                Product.characteristic.isnot(None),
            )
            .order_by(Product.sort_order.asc(), Product.name.asc())
            .all()
        )
    except SQLAlchemyError as error:
        logger.error("Catalog lookup failed", exc_info=True)
        raise UpstreamUnavailable("Lens catalog is unavailable", code="CATALOG_UNAVAILABLE") from error

    catalog: dict[str, int] = {}
    for product in products:
        catalog.setdefault(product.characteristic, int(product.price or 0))
    return catalog


def resolve_discount_percent(*, organization: Organization | None, doctor: User | None) -> float:
    """Clinic discount, else an independent doctor's personal discount, else the default."""
    if organization is not None and organization.discount_percent is not None:
        return float(organization.discount_percent)
    if doctor is not None and is_independent_doctor(doctor.sub_role) and doctor.discount_percent is not None:
        return float(doctor.discount_percent)
    return float(settings.DEFAULT_DISCOUNT_PERCENT)


def price_order(
    db: Session,
    *,
    config: dict[str, Any],
    organization: Organization | None,
    doctor: User | None,
    is_urgent: bool,
) -> PriceBreakdown:
    return calculate_price(
        lines=eye_lines_from_config(config),
        catalog=load_lens_catalog(db),
        discount_percent=resolve_discount_percent(organization=organization, doctor=doctor),
        is_urgent=is_urgent,
        urgent_surcharge_percent=settings.URGENT_SURCHARGE_PERCENT,
    )


def _apply_price(order: Order, price: PriceBreakdown) -> None:
    order.base_price = price.base_price
    order.discount_percent = price.discount_percent
    order.discount_amount = price.discount_amount
    order.urgent_surcharge = price.urgent_surcharge
    order.total_price = price.total_price


def _apply_patient(order: Order, patient: PatientIn | ExternalPatient) -> None:
    order.patient_name = patient.name
    order.patient_phone = patient.phone
    order.patient_email = patient.email
    order.patient_notes = patient.notes


def create_order(db: Session, *, request: NewOrderRequest, now: datetime) -> Order:
    """Single creation path: price snapshot, edit deadline, status `new`."""
    config = request.config.model_dump(mode="json")
    price = price_order(
        db,
        config=config,
        organization=request.organization,
        doctor=request.created_by,
        is_urgent=request.is_urgent,
    )

    order = Order(
        order_number=new_order_number(now),
        status=OrderStatus.NEW.value,
        is_urgent=request.is_urgent,
        created_at=now,
        updated_at=now,
        edit_deadline=compute_edit_deadline(created_at=now, is_urgent=request.is_urgent, window=edit_window()),
        organization_id=request.organization.id if request.organization is not None else None,
        created_by_id=request.created_by.id if request.created_by is not None else None,
        clinic_name=request.clinic_name,
        doctor_name=request.doctor_name,
        doctor_email=request.doctor_email,
        lens_config=config,
        payment_status="unpaid",
        company=request.company,
        tax_id=request.tax_id,
        delivery_method=request.delivery_method,
        delivery_address=request.delivery_address,
        notes=request.notes,
        source=request.source,
        external_id=request.external_id,
    )
    _apply_patient(order, request.patient)
    _apply_price(order, price)
    db.add(order)
    # Flush assigns the primary key referenced by the audit row.
    try:
        db.flush()
    except SQLAlchemyError as error:
        db.rollback()
        logger.error("Persistence failure while creating order", exc_info=True)
        raise UpstreamUnavailable("Order storage is unavailable", code="PERSISTENCE_UNAVAILABLE") from error

    record_audit(
        db,
        action="order_created",
        entity_type="order",
        entity_id=order.order_number,
        order=order,
        user=request.created_by,
        user_name=request.audit_user_name,
        at=now,
        details={"source": request.source, "is_urgent": request.is_urgent, **request.extra_audit},
    )
    commit_or_raise(db)
    logger.info(
        "Order %s created (source=%s, urgent=%s, total=%s)",
        order.order_number,
        order.source,
        order.is_urgent,
        order.total_price,
    )
    return order


def _resolve_owning_organization(
    db: Session,
    *,
    current_user: User,
    requested_organization_id: UUID | None,
) -> Organization | None:
    if is_clinic_role(current_user.sub_role):
        if current_user.organization_id is None:
            raise ValidationError(
                "Clinic account is not linked to an organization",
                code="CLINIC_WITHOUT_ORGANIZATION",
            )
        return db.query(Organization).filter(Organization.id == current_user.organization_id).first()
    if is_lab_role(current_user.sub_role) and requested_organization_id is not None:
        organization = db.query(Organization).filter(
            Organization.id == requested_organization_id,
            Organization.kind == "clinic",
        ).first()
        if not organization:
            raise NotFound("Clinic not found", code="CLINIC_NOT_FOUND")
        return organization
    return None


def create_order_use_case(*, db: Session, data: OrderCreate, current_user: User, now: datetime) -> Order:
    """First-party order creation by a clinic, an independent doctor or lab staff."""
    require_capability(current_user, Capability.CREATE_ORDERS)

    organization = _resolve_owning_organization(
        db,
        current_user=current_user,
        requested_organization_id=data.organization_id,
    )
    doctor_name = data.doctor_name
    if not doctor_name and not is_lab_role(current_user.sub_role):
        doctor_name = current_user.full_name

    return create_order(
        db,
        request=NewOrderRequest(
            patient=data.patient,
            config=data.config,
            is_urgent=data.is_urgent,
            organization=organization,
            created_by=current_user,
            clinic_name=organization.name if organization is not None else None,
            doctor_name=doctor_name,
            doctor_email=data.doctor_email,
            company=data.company,
            tax_id=data.tax_id,
            delivery_method=data.delivery_method,
            delivery_address=data.delivery_address,
            notes=data.notes,
        ),
        now=now,
    )


_EDITABLE_SCALARS: tuple[str, ...] = ("company", "tax_id", "delivery_method", "delivery_address", "notes")


def update_order_use_case(
    *,
    db: Session,
    order_number: str,
    data: OrderUpdate,
    current_user: User,
    now: datetime,
) -> Order:
    """Clinic owner edits patient/config/delivery/notes while the order is editable."""
    order = get_visible_order_or_404(db=db, order_number=order_number, current_user=current_user)

    require_capability(current_user, Capability.CREATE_ORDERS)
    if not is_owning_clinic_actor(order, current_user):
        raise Forbidden("Only the owning clinic can edit this order", code="ORDER_EDIT_FORBIDDEN")

    ensure_expected_version(order, data.version)

    if not is_editable(status=order.status, edit_deadline=order.edit_deadline, now=now):
        raise EditWindowClosed(
            "Order is no longer editable",
            details={"status": order.status, "edit_deadline": order.edit_deadline},
        )

    changes = data.model_dump(exclude_unset=True, exclude={"version"})
    if not changes:
        return order

    for name in _EDITABLE_SCALARS:
        if name in changes:
            setattr(order, name, changes[name])
    if data.patient is not None:
        _apply_patient(order, data.patient)

    if data.config is not None:
        config = data.config.model_dump(mode="json")
        price = price_order(
            db,
            config=config,
            organization=order.organization,
            doctor=order.created_by,
            is_urgent=bool(order.is_urgent),
        )
        order.lens_config = config
        _apply_price(order, price)

    order.updated_at = now
    record_audit(
        db,
        action="order_updated",
        entity_type="order",
        entity_id=order.order_number,
        order=order,
        user=current_user,
        at=now,
        details={"fields": sorted(changes.keys())},
    )
    commit_or_raise(db)
    logger.info("Order %s edited by %s: %s", order.order_number, current_user.id, sorted(changes.keys()))
    return order


def _ensure_transition_permission(*, order: Order, target: OrderStatus, current_user: User) -> None:
    capability = required_capability(target)
    if capability is None:
        if not has_owning_party(order):
            # No clinic or doctor to confirm receipt; the laboratory confirms instead.
            require_capability(current_user, Capability.DELIVER)
            return
        if not is_owning_clinic_actor(order, current_user):
            raise Forbidden(
                "Only the owning clinic can confirm delivery",
                code="DELIVERY_CONFIRMATION_FORBIDDEN",
            )
        return
    require_capability(current_user, capability)


def change_order_status_use_case(
    *,
    db: Session,
    order_number: str,
    next_status: str,
    current_user: User,
    now: datetime,
    notes: str | None = None,
    expected_version: int | None = None,
) -> Order:
    """Apply one transition from the table; permission is decided before the current state is read."""
    target = parse_order_status(next_status)
    order = get_visible_order_or_404(db=db, order_number=order_number, current_user=current_user)

    _ensure_transition_permission(order=order, target=target, current_user=current_user)
    ensure_expected_version(order, expected_version)

    old_status = order.status
    validate_status_transition(current_status=old_status, next_status=target)

    if old_status == OrderStatus.NEW.value and target is OrderStatus.IN_PRODUCTION:
        if not is_production_eligible(
            is_urgent=bool(order.is_urgent),
            edit_deadline=order.edit_deadline,
            now=now,
        ):
            raise EditWindowClosed(
                "Production cannot start while the clinic edit window is open",
                code="EDIT_WINDOW_STILL_OPEN",
                details={"edit_deadline": order.edit_deadline},
            )

    timestamps = apply_status_timestamps(
        next_status=target,
        production_started_at=order.production_started_at,
        production_completed_at=order.production_completed_at,
        shipped_at=order.shipped_at,
        delivered_at=order.delivered_at,
        at=now,
    )
    for name, value in timestamps.items():
        setattr(order, name, value)
    if target is OrderStatus.SHIPPED and not order.tracking_number:
        order.tracking_number = new_tracking_number(now)
    if notes:
        order.notes = notes

    order.status = target.value
    order.updated_at = now
    record_audit(
        db,
        action="order_status_changed",
        entity_type="order",
        entity_id=order.order_number,
        order=order,
        user=current_user,
        at=now,
        details={"oldStatus": old_status, "newStatus": target.value},
    )
    commit_or_raise(db)
    logger.info("Order %s: %s -> %s by %s", order.order_number, old_status, target.value, current_user.id)
    return order


def update_payment_status_use_case(
    *,
    db: Session,
    order_number: str,
    payment_status: str,
    current_user: User,
    now: datetime,
    expected_version: int | None = None,
) -> Order:
    """Payment moves freely among unpaid/partial/paid, independent of order status."""
    require_capability(current_user, Capability.CHANGE_PAYMENTS)
    target = parse_payment_status(payment_status)
    order = get_visible_order_or_404(db=db, order_number=order_number, current_user=current_user)
    ensure_expected_version(order, expected_version)

    # Idempotent.
    if order.payment_status == target.value:
        return order

    old_payment_status = order.payment_status
    order.payment_status = target.value
    order.updated_at = now
    record_audit(
        db,
        action="order_payment_changed",
        entity_type="order",
        entity_id=order.order_number,
        order=order,
        user=current_user,
        at=now,
        details={"oldPaymentStatus": old_payment_status, "newPaymentStatus": target.value},
    )
    commit_or_raise(db)
    logger.info("Order %s payment: %s -> %s", order.order_number, old_payment_status, target.value)
    return order
