"""Counterparty aggregates and discounts."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import PermissionChecker, get_current_user
from ..database import get_db
from ..models import User
from ..schemas import DiscountUpdate
from ..services.edit_window import now_utc
from ..services.permissions import Capability
from ..use_cases.counterparties import (
    counterparty_detail_use_case,
    list_counterparties_use_case,
    update_clinic_discount_use_case,
    update_doctor_discount_use_case,
)

router = APIRouter(prefix="/counterparties", tags=["counterparties"])


@router.get("")
def list_counterparties(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return list_counterparties_use_case(db=db, current_user=current_user)


@router.get("/{party_id}")
def get_counterparty(
    party_id: UUID,
    party_type: str = Query("clinic", alias="type"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Clinic or doctor detail with its latest orders."""
    return counterparty_detail_use_case(
        db=db,
        party_id=party_id,
        party_type=party_type,
        current_user=current_user,
    )


@router.patch("/clinics/{organization_id}/discount")
def update_clinic_discount(
    organization_id: UUID,
    data: DiscountUpdate,
    current_user: User = Depends(PermissionChecker(Capability.EDIT_DISCOUNTS)),
    db: Session = Depends(get_db),
):
    clinic = update_clinic_discount_use_case(
        db=db,
        organization_id=organization_id,
        discount_percent=data.discount_percent,
        current_user=current_user,
        now=now_utc(),
    )
    return {"id": str(clinic.id), "name": clinic.name, "discount_percent": float(clinic.discount_percent)}


@router.patch("/doctors/{user_id}/discount")
def update_doctor_discount(
    user_id: UUID,
    data: DiscountUpdate,
    current_user: User = Depends(PermissionChecker(Capability.EDIT_DISCOUNTS)),
    db: Session = Depends(get_db),
):
    doctor = update_doctor_discount_use_case(
        db=db,
        user_id=user_id,
        discount_percent=data.discount_percent,
        current_user=current_user,
        now=now_utc(),
    )
    return {"id": str(doctor.id), "full_name": doctor.full_name, "discount_percent": doctor.discount_percent}
