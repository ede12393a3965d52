"""
Celery worker for the optional outbound ERP mirror.

Mirroring is best-effort: failures are logged and never affect the order.
"""
import logging

import requests
from celery import Celery

from .config import settings
from .database import SessionLocal
from .models import Order

logger = logging.getLogger(__name__)

celery_app = Celery(
    "lensflow",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
)


def build_customer_order_payload(order: Order) -> dict:
    """ERP customer-order document for one order (one position per eye)."""
    eyes = (order.lens_config or {}).get("eyes") or {}
    positions = []
    for eye in ("od", "os"):
        params = eyes.get(eye) or {}
        positions.append({
            "eye": eye,
            "characteristic": params.get("characteristic"),
            "quantity": int(params.get("qty") or 1),
        })
    return {
        "name": order.order_number,
        "description": (
            f"LensFlow order\nPatient: {order.patient_name}\n"
            f"Clinic: {order.clinic_name or '-'}"
        ),
        "moment": order.created_at.isoformat() if order.created_at else None,
        "externalCode": order.external_id or order.order_number,
        "sum": order.total_price,
        "urgent": bool(order.is_urgent),
        "positions": positions,
    }


def send_erp_customer_order(payload: dict) -> tuple[bool, str | None]:
    """POST a customer order to the ERP API."""
    if not settings.ERP_USERNAME:
        return False, "ERP_CREDENTIALS_NOT_CONFIGURED"

    url = f"{settings.ERP_API_URL.rstrip('/')}/entity/customerorder"

    try:
        response = requests.post(
            url,
            json=payload,
            auth=(settings.ERP_USERNAME, settings.ERP_PASSWORD),
            headers={"Accept": "application/json"},
            timeout=settings.ERP_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        return False, f"EXCEPTION: {str(e)}"

    if response.status_code in (200, 201):
        return True, None
    return False, f"HTTP_{response.status_code}: {response.text[:200]}"


@celery_app.task(name="mirror_order_to_erp")
def mirror_order_to_erp(order_number: str) -> bool:
    db = SessionLocal()
    try:
        order = db.query(Order).filter(Order.order_number == order_number).first()
        if order is None:
            logger.warning("ERP mirror: order %s not found", order_number)
            return False

        ok, error = send_erp_customer_order(build_customer_order_payload(order))
        if ok:
            logger.info("ERP mirror: order %s exported", order_number)
        else:
            logger.warning("ERP mirror: order %s not exported: %s", order_number, error)
        return ok
    finally:
        db.close()


def enqueue_order_mirror(order_number: str) -> bool:
    """Queue the mirror after commit; no-op unless ERP_MIRROR_ENABLED."""
    if not settings.ERP_MIRROR_ENABLED:
        return False
    try:
        mirror_order_to_erp.delay(order_number)
    except Exception:
        # Broker outage must not fail an already committed order.
        logger.error("ERP mirror: failed to enqueue order %s", order_number, exc_info=True)
        return False
    return True
