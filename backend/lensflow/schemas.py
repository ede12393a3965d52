"""Pydantic schemas for API."""
from pydantic import BaseModel, Field, ConfigDict
from typing import Literal, Optional
from datetime import datetime
from uuid import UUID

PHONE_PATTERN = r"^\+?[\d\s\-()]{10,20}$"


# Lens configuration
class EyeParams(BaseModel):
    """Orthokeratology parameters for one eye."""
    characteristic: Optional[Literal["toric", "spherical", "rgp"]] = None
    myorthok: Optional[bool] = None
    km: Optional[float] = None
    tp: Optional[float] = None
    dia: Optional[float] = None
    e1: Optional[float] = None
    e2: Optional[float] = None
    tor: Optional[float] = None
    trial: Optional[bool] = None
    color: Optional[str] = None
    dk: Optional[Literal["50", "100", "125", "180"]] = None
    apical_clearance: Optional[float] = Field(None, ge=-9, le=9)
    compression_factor: Optional[float] = Field(None, ge=-4.5, le=4.5)
    qty: int = Field(1, ge=1, le=100)


class EyesConfig(BaseModel):
    od: EyeParams
    os: EyeParams


class LensConfig(BaseModel):
    type: Literal["medilens"] = "medilens"
    eyes: EyesConfig


class PatientIn(BaseModel):
    name: str = Field(min_length=2)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    email: Optional[str] = None
    notes: Optional[str] = None


# Order schemas
class OrderCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    patient: PatientIn
    config: LensConfig
    is_urgent: bool = False
    doctor_name: Optional[str] = None
    doctor_email: Optional[str] = None
    company: Optional[str] = None
    tax_id: Optional[str] = None
    delivery_method: Optional[str] = None
    delivery_address: Optional[str] = None
    notes: Optional[str] = None
    # Laboratory staff may create on behalf of a clinic.
    organization_id: Optional[UUID] = None


class OrderUpdate(BaseModel):
    """Editable fields only; status, urgency and price are never client-writable."""
    model_config = ConfigDict(extra="forbid")

    patient: Optional[PatientIn] = None
    config: Optional[LensConfig] = None
    company: Optional[str] = None
    tax_id: Optional[str] = None
    delivery_method: Optional[str] = None
    delivery_address: Optional[str] = None
    notes: Optional[str] = None
    version: Optional[int] = None


class OrderStatusUpdate(BaseModel):
    status: str
    notes: Optional[str] = None
    version: Optional[int] = None


class PaymentStatusUpdate(BaseModel):
    payment_status: str
    version: Optional[int] = None


# Defect schemas
class DefectCreate(BaseModel):
    qty: int = Field(ge=1)
    note: Optional[str] = None


class DefectArchiveUpdate(BaseModel):
    # Omitted -> flip the current value.
    archived: Optional[bool] = None


class DefectResponse(BaseModel):
    id: str
    qty: int
    note: Optional[str] = None
    created_at: datetime
    archived: bool
    model_config = ConfigDict(from_attributes=True)


# Counterparty schemas
class DiscountUpdate(BaseModel):
    discount_percent: float = Field(ge=0, le=100)


# Catalog schemas
class ProductCreate(BaseModel):
    name: str = Field(min_length=1)
    category: Literal["lens", "accessory", "service"] = "lens"
    characteristic: Optional[Literal["toric", "spherical", "rgp"]] = None
    sku: Optional[str] = None
    description: Optional[str] = None
    price: int = Field(0, ge=0)
    unit: str = "pcs"
    sort_order: int = 0


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[Literal["lens", "accessory", "service"]] = None
    characteristic: Optional[Literal["toric", "spherical", "rgp"]] = None
    sku: Optional[str] = None
    description: Optional[str] = None
    price: Optional[int] = Field(None, ge=0)
    unit: Optional[str] = None
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None


# External bridge schemas
class ExternalPatient(BaseModel):
    name: str = Field(min_length=1)
    phone: Optional[str] = None
    email: Optional[str] = None
    notes: Optional[str] = None


class ExternalOrderCreate(BaseModel):
    external_order_id: Optional[str] = None
    creator_name: Optional[str] = None
    creator_email: Optional[str] = None
    clinic_name: Optional[str] = None
    patient: ExternalPatient
    config: LensConfig
    is_urgent: bool = False
    delivery_method: Optional[str] = None
    delivery_address: Optional[str] = None
    notes: Optional[str] = None
    company: Optional[str] = None
    tax_id: Optional[str] = None


class ExternalOrderCreated(BaseModel):
    success: bool = True
    order_id: str
    external_order_id: Optional[str] = None
    status: str
    total_price: int
    edit_deadline: datetime
    created_at: datetime


# Auth schemas
class LoginRequest(BaseModel):
    email: str
    password: str


class ActorResponse(BaseModel):
    id: UUID
    email: str
    full_name: str
    sub_role: str
    organization_id: Optional[UUID] = None
    permissions: dict[str, bool]


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: ActorResponse
