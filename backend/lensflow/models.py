"""SQLAlchemy models."""
from sqlalchemy import (
    JSON, Boolean, CheckConstraint, Column, DateTime, Float, ForeignKey, Index,
    Integer, String, Text, Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from .database import Base
from .services.order_state import OrderStatus, PaymentStatus
from .services.permissions import SubRole

JSONType = JSON().with_variant(JSONB(), "postgresql")

_ORDER_STATUSES = [status.value for status in OrderStatus]
_PAYMENT_STATUSES = [status.value for status in PaymentStatus]
_SUB_ROLES = [role.value for role in SubRole]


class Organization(Base):
    """Laboratory or clinic (pricing party for clinic orders)."""
    __tablename__ = "organizations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    kind = Column(String(20), nullable=False, default="clinic", index=True)
    name = Column(String(255), nullable=False, index=True)
    city = Column(String(120), nullable=True)
    tax_id = Column(String(32), nullable=True)
    phone = Column(String(32), nullable=True)
    email = Column(String(255), nullable=True)
    discount_percent = Column(Float, nullable=False, default=5.0)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(kind.in_(["laboratory", "clinic"]), name="chk_organization_kind"),
        CheckConstraint("discount_percent >= 0 AND discount_percent <= 100", name="chk_organization_discount"),
    )

    users = relationship("User", back_populates="organization")
    orders = relationship("Order", back_populates="organization")


class User(Base):
    """Actor with exactly one sub-role."""
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=True)
    sub_role = Column(String(32), nullable=False, index=True)
    # Personal discount for independent doctors; None means the default applies.
    discount_percent = Column(Float, nullable=True)
    # Monotonically increasing version used to revoke previously issued tokens.
    token_version = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(sub_role.in_(_SUB_ROLES), name="chk_user_sub_role"),
    )

    organization = relationship("Organization", back_populates="users")


class Product(Base):
    """Catalog entry; lens products are priced per characteristic."""
    __tablename__ = "products"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    category = Column(String(20), nullable=False, default="lens", index=True)
    characteristic = Column(String(20), nullable=True, index=True)
    sku = Column(String(64), unique=True, nullable=True)
    description = Column(Text, nullable=True)
    price = Column(Integer, nullable=False, default=0)
    unit = Column(String(20), nullable=False, default="pcs")
    sort_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(category.in_(["lens", "accessory", "service"]), name="chk_product_category"),
        CheckConstraint(price >= 0, name="chk_product_price_non_negative"),
    )


class Order(Base):
    """Lens manufacturing order (aggregate root)."""
    __tablename__ = "orders"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_number = Column(String(32), unique=True, nullable=False, index=True)
    status = Column(String(20), nullable=False, default=OrderStatus.NEW.value, index=True)
    is_urgent = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    edit_deadline = Column(DateTime(timezone=True), nullable=False)

    # Patient snapshot
    patient_name = Column(String(255), nullable=False)
    patient_phone = Column(String(32), nullable=True)
    patient_email = Column(String(255), nullable=True)
    patient_notes = Column(Text, nullable=True)

    # Ownership
    organization_id = Column(Uuid, ForeignKey("organizations.id"), nullable=True, index=True)
    created_by_id = Column(Uuid, ForeignKey("users.id"), nullable=True, index=True)
    clinic_name = Column(String(255), nullable=True)
    doctor_name = Column(String(255), nullable=True)
    doctor_email = Column(String(255), nullable=True)

    lens_config = Column(JSONType, nullable=False)

    # Price snapshot (smallest currency unit)
    base_price = Column(Integer, nullable=False, default=0)
    discount_percent = Column(Float, nullable=False, default=5.0)
    discount_amount = Column(Integer, nullable=False, default=0)
    urgent_surcharge = Column(Integer, nullable=False, default=0)
    total_price = Column(Integer, nullable=False, default=0)

    payment_status = Column(String(20), nullable=False, default=PaymentStatus.UNPAID.value, index=True)

    delivery_method = Column(String(100), nullable=True)
    delivery_address = Column(Text, nullable=True)
    company = Column(String(255), nullable=True)
    tax_id = Column(String(32), nullable=True)
    notes = Column(Text, nullable=True)

    external_id = Column(String(100), nullable=True, index=True)
    source = Column(String(20), nullable=False, default="first_party", index=True)
    tracking_number = Column(String(64), nullable=True)

    production_started_at = Column(DateTime(timezone=True), nullable=True)
    production_completed_at = Column(DateTime(timezone=True), nullable=True)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(status.in_(_ORDER_STATUSES), name="chk_order_status"),
        CheckConstraint(payment_status.in_(_PAYMENT_STATUSES), name="chk_order_payment_status"),
        CheckConstraint(source.in_(["first_party", "external"]), name="chk_order_source"),
        CheckConstraint(total_price >= 0, name="chk_order_total_non_negative"),
        Index("idx_orders_org_created", "organization_id", "created_at"),
    )

    organization = relationship("Organization", back_populates="orders")
    created_by = relationship("User")
    defects = relationship(
        "OrderDefect",
        back_populates="order",
        order_by="OrderDefect.created_at",
        cascade="all, delete-orphan",
    )


class OrderDefect(Base):
    """Defect ledger entry; immutable except for `archived`."""
    __tablename__ = "order_defects"

    id = Column(String(32), primary_key=True)
    order_id = Column(Uuid, ForeignKey("orders.id"), nullable=False, index=True)
    qty = Column(Integer, nullable=False)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_by_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    archived = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint(qty >= 1, name="chk_defect_qty_positive"),
    )

    order = relationship("Order", back_populates="defects")


class AuditEvent(Base):
    """Append-only history of order actions."""
    __tablename__ = "audit_events"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    action = Column(String(50), nullable=False, index=True)
    entity_type = Column(String(30), nullable=False)
    entity_id = Column(String(64), nullable=False, index=True)
    order_id = Column(Uuid, ForeignKey("orders.id"), nullable=True, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    user_name = Column(String(255), nullable=True)
    details = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)

    __table_args__ = (
        CheckConstraint(
            action.in_(
                [
                    "order_created",
                    "order_updated",
                    "order_status_changed",
                    "order_payment_changed",
                    "defect_added",
                    "defect_archived",
                    "discount_changed",
                ]
            ),
            name="chk_audit_action",
        ),
    )
