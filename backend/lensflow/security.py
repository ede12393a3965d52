"""Security helpers (capability enforcement, order visibility and ownership)."""

from __future__ import annotations

from typing import Any

from sqlalchemy import false

from .domain_errors import Forbidden
from .models import Order, User
from .services.permissions import (
    Capability,
    has_capability,
    is_clinic_role,
    is_independent_doctor,
    is_lab_role,
)


def require_capability(user: User, capability: Capability) -> None:
    """Enforce a capability server-side."""
    if not has_capability(user.sub_role, capability):
        raise Forbidden(
            f"Permission denied: {capability.value} required",
            code="CAPABILITY_REQUIRED",
            details={"capability": capability.value},
        )


def apply_order_visibility_scope(query: Any, current_user: User):
    """Laboratory sees every order, clinic staff their clinic's, independent doctors their own."""
    if is_lab_role(current_user.sub_role):
        return query
    if is_clinic_role(current_user.sub_role) and current_user.organization_id is not None:
        return query.filter(Order.organization_id == current_user.organization_id)
    if is_independent_doctor(current_user.sub_role):
        return query.filter(Order.created_by_id == current_user.id)
    return query.filter(false())


def can_view_order(order: Order, current_user: User) -> bool:
    """Object-level order access check (used for IDOR prevention)."""
    if is_lab_role(current_user.sub_role):
        return True
    return is_owning_clinic_actor(order, current_user)


def is_owning_clinic_actor(order: Order, current_user: User) -> bool:
    """Clinic-side actor that owns the order (clinic staff of its organization, or its independent doctor)."""
    if is_clinic_role(current_user.sub_role):
        return current_user.organization_id is not None and order.organization_id == current_user.organization_id
    if is_independent_doctor(current_user.sub_role):
        return order.created_by_id is not None and order.created_by_id == current_user.id
    return False


def has_owning_party(order: Order) -> bool:
    """True when a clinic or an independent doctor owns the order."""
    if order.organization_id is not None:
        return True
    creator = order.created_by
    return creator is not None and is_independent_doctor(creator.sub_role)
