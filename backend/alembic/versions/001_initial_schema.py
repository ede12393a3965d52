"""initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = '001'
down_revision = None
branch_labels = None
depends_on = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")

ORDER_STATUSES = ("new", "in_production", "ready", "rework", "shipped", "out_for_delivery", "delivered", "cancelled")
PAYMENT_STATUSES = ("unpaid", "partial", "paid")
SUB_ROLES = (
    "lab_head", "lab_admin", "lab_engineer", "lab_quality", "lab_logistics", "lab_accountant",
    "optic_manager", "optic_doctor", "optic_accountant", "doctor",
)
AUDIT_ACTIONS = (
    "order_created", "order_updated", "order_status_changed", "order_payment_changed",
    "defect_added", "defect_archived", "discount_changed",
)


def _in(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("kind", sa.String(20), nullable=False, server_default="clinic"),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("city", sa.String(120)),
        sa.Column("tax_id", sa.String(32)),
        sa.Column("phone", sa.String(32)),
        sa.Column("email", sa.String(255)),
        sa.Column("discount_percent", sa.Float(), nullable=False, server_default="5"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(_in("kind", ("laboratory", "clinic")), name="chk_organization_kind"),
        sa.CheckConstraint("discount_percent >= 0 AND discount_percent <= 100", name="chk_organization_discount"),
    )
    op.create_index("ix_organizations_kind", "organizations", ["kind"])
    op.create_index("ix_organizations_name", "organizations", ["name"])

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("organization_id", sa.Uuid(), sa.ForeignKey("organizations.id")),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(32)),
        sa.Column("sub_role", sa.String(32), nullable=False),
        sa.Column("discount_percent", sa.Float()),
        sa.Column("token_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(_in("sub_role", SUB_ROLES), name="chk_user_sub_role"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_organization_id", "users", ["organization_id"])
    op.create_index("ix_users_sub_role", "users", ["sub_role"])

    op.create_table(
        "products",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(20), nullable=False, server_default="lens"),
        sa.Column("characteristic", sa.String(20)),
        sa.Column("sku", sa.String(64), unique=True),
        sa.Column("description", sa.Text()),
        sa.Column("price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("unit", sa.String(20), nullable=False, server_default="pcs"),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(_in("category", ("lens", "accessory", "service")), name="chk_product_category"),
        sa.CheckConstraint("price >= 0", name="chk_product_price_non_negative"),
    )
    op.create_index("ix_products_category", "products", ["category"])
    op.create_index("ix_products_characteristic", "products", ["characteristic"])
    op.create_index("ix_products_is_active", "products", ["is_active"])

    op.create_table(
        "orders",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("order_number", sa.String(32), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="new"),
        sa.Column("is_urgent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("edit_deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("patient_name", sa.String(255), nullable=False),
        sa.Column("patient_phone", sa.String(32)),
        sa.Column("patient_email", sa.String(255)),
        sa.Column("patient_notes", sa.Text()),
        sa.Column("organization_id", sa.Uuid(), sa.ForeignKey("organizations.id")),
        sa.Column("created_by_id", sa.Uuid(), sa.ForeignKey("users.id")),
        sa.Column("clinic_name", sa.String(255)),
        sa.Column("doctor_name", sa.String(255)),
        sa.Column("doctor_email", sa.String(255)),
        sa.Column("lens_config", JSONType, nullable=False),
        sa.Column("base_price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("discount_percent", sa.Float(), nullable=False, server_default="5"),
        sa.Column("discount_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("urgent_surcharge", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_price", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="unpaid"),
        sa.Column("delivery_method", sa.String(100)),
        sa.Column("delivery_address", sa.Text()),
        sa.Column("company", sa.String(255)),
        sa.Column("tax_id", sa.String(32)),
        sa.Column("notes", sa.Text()),
        sa.Column("external_id", sa.String(100)),
        sa.Column("source", sa.String(20), nullable=False, server_default="first_party"),
        sa.Column("tracking_number", sa.String(64)),
        sa.Column("production_started_at", sa.DateTime(timezone=True)),
        sa.Column("production_completed_at", sa.DateTime(timezone=True)),
        sa.Column("shipped_at", sa.DateTime(timezone=True)),
        sa.Column("delivered_at", sa.DateTime(timezone=True)),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint(_in("status", ORDER_STATUSES), name="chk_order_status"),
        sa.CheckConstraint(_in("payment_status", PAYMENT_STATUSES), name="chk_order_payment_status"),
        sa.CheckConstraint(_in("source", ("first_party", "external")), name="chk_order_source"),
        sa.CheckConstraint("total_price >= 0", name="chk_order_total_non_negative"),
    )
    op.create_index("ix_orders_order_number", "orders", ["order_number"], unique=True)
    op.create_index("ix_orders_status", "orders", ["status"])
    op.create_index("ix_orders_created_at", "orders", ["created_at"])
    op.create_index("ix_orders_organization_id", "orders", ["organization_id"])
    op.create_index("ix_orders_created_by_id", "orders", ["created_by_id"])
    op.create_index("ix_orders_payment_status", "orders", ["payment_status"])
    op.create_index("ix_orders_external_id", "orders", ["external_id"])
    op.create_index("ix_orders_source", "orders", ["source"])
    op.create_index("idx_orders_org_created", "orders", ["organization_id", "created_at"])

    op.create_table(
        "order_defects",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("order_id", sa.Uuid(), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("qty", sa.Integer(), nullable=False),
        sa.Column("note", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_by_id", sa.Uuid(), sa.ForeignKey("users.id")),
        sa.Column("archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.CheckConstraint("qty >= 1", name="chk_defect_qty_positive"),
    )
    op.create_index("ix_order_defects_order_id", "order_defects", ["order_id"])
    op.create_index("ix_order_defects_created_at", "order_defects", ["created_at"])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(30), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("order_id", sa.Uuid(), sa.ForeignKey("orders.id")),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id")),
        sa.Column("user_name", sa.String(255)),
        sa.Column("details", JSONType),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(_in("action", AUDIT_ACTIONS), name="chk_audit_action"),
    )
    op.create_index("ix_audit_events_action", "audit_events", ["action"])
    op.create_index("ix_audit_events_entity_id", "audit_events", ["entity_id"])
    op.create_index("ix_audit_events_order_id", "audit_events", ["order_id"])
    op.create_index("ix_audit_events_created_at", "audit_events", ["created_at"])


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("order_defects")
    op.drop_table("orders")
    op.drop_table("products")
    op.drop_table("users")
    op.drop_table("organizations")
