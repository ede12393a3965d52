"""Sub-role to capability resolver (single source of truth for every entry point)."""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Mapping


class SubRole(str, Enum):
    LAB_HEAD = "lab_head"
    LAB_ADMIN = "lab_admin"
    LAB_ENGINEER = "lab_engineer"
    LAB_QUALITY = "lab_quality"
    LAB_LOGISTICS = "lab_logistics"
    LAB_ACCOUNTANT = "lab_accountant"
    OPTIC_MANAGER = "optic_manager"
    OPTIC_DOCTOR = "optic_doctor"
    OPTIC_ACCOUNTANT = "optic_accountant"
    DOCTOR = "doctor"


class Capability(str, Enum):
    CREATE_ORDERS = "canCreateOrders"
    CHANGE_STATUS = "canChangeStatus"
    MARK_READY = "canMarkReady"
    MARK_REWORK = "canMarkRework"
    SHIP = "canShip"
    DELIVER = "canDeliver"
    ADD_DEFECTS = "canAddDefects"
    VIEW_PAYMENTS = "canViewPayments"
    CHANGE_PAYMENTS = "canChangePayments"
    PRINT = "canPrint"
    VIEW_KANBAN = "canViewKanban"
    VIEW_STATS = "canViewStats"
    # Outside the order transition table.
    VIEW_PRICES = "canViewPrices"
    EDIT_DISCOUNTS = "canEditDiscounts"
    MANAGE_CATALOG = "canManageCatalog"


LAB_SUB_ROLES: frozenset[SubRole] = frozenset(
    {
        SubRole.LAB_HEAD,
        SubRole.LAB_ADMIN,
        SubRole.LAB_ENGINEER,
        SubRole.LAB_QUALITY,
        SubRole.LAB_LOGISTICS,
        SubRole.LAB_ACCOUNTANT,
    }
)
CLINIC_SUB_ROLES: frozenset[SubRole] = frozenset(
    {SubRole.OPTIC_MANAGER, SubRole.OPTIC_DOCTOR, SubRole.OPTIC_ACCOUNTANT}
)

_ALL = frozenset(Capability)

_GRANTS: dict[SubRole, frozenset[Capability]] = {
    SubRole.LAB_HEAD: _ALL,
    SubRole.LAB_ADMIN: _ALL - {Capability.EDIT_DISCOUNTS},
    SubRole.LAB_ENGINEER: frozenset(
        {
            Capability.CHANGE_STATUS,
            Capability.MARK_READY,
            Capability.PRINT,
            Capability.VIEW_KANBAN,
        }
    ),
    SubRole.LAB_QUALITY: frozenset(
        {
            Capability.ADD_DEFECTS,
            Capability.MARK_REWORK,
            Capability.VIEW_KANBAN,
            Capability.PRINT,
        }
    ),
    SubRole.LAB_LOGISTICS: frozenset({Capability.DELIVER, Capability.VIEW_KANBAN}),
    SubRole.LAB_ACCOUNTANT: frozenset(
        {Capability.VIEW_PAYMENTS, Capability.CHANGE_PAYMENTS, Capability.VIEW_PRICES}
    ),
    SubRole.OPTIC_MANAGER: frozenset(
        {
            Capability.CREATE_ORDERS,
            Capability.VIEW_PAYMENTS,
            Capability.VIEW_STATS,
            Capability.VIEW_PRICES,
        }
    ),
    SubRole.OPTIC_DOCTOR: frozenset({Capability.CREATE_ORDERS}),
    SubRole.OPTIC_ACCOUNTANT: frozenset({Capability.VIEW_PAYMENTS, Capability.VIEW_PRICES}),
    SubRole.DOCTOR: frozenset({Capability.CREATE_ORDERS, Capability.PRINT}),
}

# Full boolean matrix; built eagerly so a sub-role missing from _GRANTS fails at import.
ROLE_PERMISSIONS: Mapping[SubRole, Mapping[str, bool]] = MappingProxyType(
    {
        role: MappingProxyType({cap.value: cap in _GRANTS[role] for cap in Capability})
        for role in SubRole
    }
)

_DENY_ALL: Mapping[str, bool] = MappingProxyType({cap.value: False for cap in Capability})


def parse_sub_role(value: str | SubRole | None) -> SubRole | None:
    """Return the SubRole for a raw value, or None when unrecognized."""
    if isinstance(value, SubRole):
        return value
    if not value:
        return None
    try:
        return SubRole(str(value).strip())
    except ValueError:
        return None


def resolve_capabilities(sub_role: str | SubRole | None) -> Mapping[str, bool]:
    """Total, fail-closed resolver: unknown sub-roles get the all-false vector."""
    role = parse_sub_role(sub_role)
    if role is None:
        return _DENY_ALL
    return ROLE_PERMISSIONS[role]


def has_capability(sub_role: str | SubRole | None, capability: Capability) -> bool:
    return bool(resolve_capabilities(sub_role).get(capability.value, False))


def is_lab_role(sub_role: str | SubRole | None) -> bool:
    return parse_sub_role(sub_role) in LAB_SUB_ROLES


def is_clinic_role(sub_role: str | SubRole | None) -> bool:
    return parse_sub_role(sub_role) in CLINIC_SUB_ROLES


def is_independent_doctor(sub_role: str | SubRole | None) -> bool:
    return parse_sub_role(sub_role) is SubRole.DOCTOR
