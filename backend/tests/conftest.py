from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lensflow.database import Base
from lensflow.models import Organization, Product, User
from lensflow.schemas import EyeParams, EyesConfig, LensConfig, OrderCreate, PatientIn
from lensflow.services.permissions import SubRole, is_clinic_role, is_lab_role

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

LENS_PRICES = {"toric": 40000, "spherical": 40000, "rgp": 32000}


def lens_config(characteristic: str | None = "toric", *, od_qty: int = 1, os_qty: int = 1) -> LensConfig:
    return LensConfig(
        eyes=EyesConfig(
            od=EyeParams(characteristic=characteristic, qty=od_qty),
            os=EyeParams(characteristic=characteristic, qty=os_qty),
        )
    )


def order_payload(*, is_urgent: bool = False, characteristic: str = "toric", **extra) -> OrderCreate:
    return OrderCreate(
        patient=PatientIn(name="Ivan Petrov", phone="+7 900 123-45-67"),
        config=lens_config(characteristic),
        is_urgent=is_urgent,
        **extra,
    )


def build_engine(url: str = "sqlite://"):
    kwargs = {"connect_args": {"check_same_thread": False}}
    if url == "sqlite://":
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)
    Base.metadata.create_all(engine)
    return engine


def populate(session) -> SimpleNamespace:
    """Laboratory, two clinics, one user per sub-role and a lens catalog."""
    lab = Organization(kind="laboratory", name="MediLens Lab", discount_percent=0)
    clinic = Organization(kind="clinic", name="Optika Vision", discount_percent=5)
    other_clinic = Organization(kind="clinic", name="Second Sight", discount_percent=10)
    session.add_all([lab, clinic, other_clinic])
    session.flush()

    users: dict[str, User] = {}
    for role in SubRole:
        if is_lab_role(role):
            organization_id = lab.id
        elif is_clinic_role(role):
            organization_id = clinic.id
        else:
            organization_id = None
        user = User(
            email=f"{role.value}@test.local",
            password_hash="not-a-real-hash",
            full_name=f"User {role.value}",
            sub_role=role.value,
            organization_id=organization_id,
        )
        session.add(user)
        users[role.value] = user

    outsider = User(
        email="manager@second.local",
        password_hash="not-a-real-hash",
        full_name="Second Sight Manager",
        sub_role=SubRole.OPTIC_MANAGER.value,
        organization_id=other_clinic.id,
    )
    session.add(outsider)

    for sort_order, (characteristic, price) in enumerate(LENS_PRICES.items()):
        session.add(
            Product(
                name=f"MediLens {characteristic}",
                category="lens",
                characteristic=characteristic,
                sku=f"ML-{characteristic.upper()}",
                price=price,
                sort_order=sort_order,
            )
        )
    session.commit()
    return SimpleNamespace(lab=lab, clinic=clinic, other_clinic=other_clinic, users=users, outsider=outsider)


@pytest.fixture()
def engine():
    engine = build_engine()
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def world(db) -> SimpleNamespace:
    return populate(db)
