"""Seed database with demo data."""
from lensflow.database import Base, SessionLocal, engine
from lensflow.models import Organization, Product, User
from lensflow.auth import get_password_hash
import uuid

LAB_ID = uuid.UUID('00000000-0000-0000-0000-000000000001')
CLINIC_ID = uuid.UUID('00000000-0000-0000-0000-000000000002')


def seed():
    """Seed database with demo data."""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()

    try:
        if db.query(Organization).filter(Organization.id == LAB_ID).first():
            print("Demo data already present, nothing to do.")
            return

        # Organizations
        lab = Organization(
            id=LAB_ID,
            kind="laboratory",
            name="MediLens Laboratory",
            city="Moscow",
            discount_percent=0,
        )
        clinic = Organization(
            id=CLINIC_ID,
            kind="clinic",
            name="Optika Demo",
            city="Moscow",
            tax_id="7701234567",
            phone="+7 495 000-00-00",
            discount_percent=5,
        )
        db.add_all([lab, clinic])
        db.flush()

        # Users: every lab sub-role, clinic staff, one independent doctor
        users_data = [
            ('head@lab.local', 'head123', 'Lab Head', 'lab_head', lab.id),
            ('admin@lab.local', 'admin123', 'Lab Administrator', 'lab_admin', lab.id),
            ('engineer@lab.local', 'engineer123', 'Lab Engineer', 'lab_engineer', lab.id),
            ('quality@lab.local', 'quality123', 'Quality Control', 'lab_quality', lab.id),
            ('logistics@lab.local', 'logistics123', 'Logistics', 'lab_logistics', lab.id),
            ('accountant@lab.local', 'accountant123', 'Lab Accountant', 'lab_accountant', lab.id),
            ('manager@optika.local', 'manager123', 'Clinic Manager', 'optic_manager', clinic.id),
            ('doctor@optika.local', 'doctor123', 'Clinic Doctor', 'optic_doctor', clinic.id),
            ('accountant@optika.local', 'accountant123', 'Clinic Accountant', 'optic_accountant', clinic.id),
            ('doctor@private.local', 'doctor123', 'Independent Doctor', 'doctor', None),
        ]
        for email, password, full_name, sub_role, organization_id in users_data:
            db.add(User(
                email=email,
                password_hash=get_password_hash(password),
                full_name=full_name,
                sub_role=sub_role,
                organization_id=organization_id,
                discount_percent=7 if sub_role == 'doctor' else None,
            ))

        # Lens catalog (unit prices per characteristic)
        products_data = [
            ('MediLens toric', 'toric', 'ML-TOR', 40000, 10),
            ('MediLens spherical', 'spherical', 'ML-SPH', 40000, 20),
            ('MediLens RGP', 'rgp', 'ML-RGP', 32000, 30),
        ]
        for name, characteristic, sku, price, sort_order in products_data:
            db.add(Product(
                name=name,
                category='lens',
                characteristic=characteristic,
                sku=sku,
                price=price,
                sort_order=sort_order,
            ))
        db.add(Product(
            name='Lens care kit',
            category='accessory',
            sku='ACC-CARE',
            price=2500,
            sort_order=100,
        ))

        db.commit()
        print("Demo data created:")
        for email, password, _, sub_role, _ in users_data:
            print(f"  {sub_role:<17} {email} / {password}")

    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed()
