"""Human-readable identifiers: order numbers, defect ids, tracking numbers."""

from __future__ import annotations

import secrets
from datetime import datetime

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def _stamped_id(prefix: str, at: datetime, random_chars: int) -> str:
    millis = int(at.timestamp() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(random_chars))
    return f"{prefix}-{_base36(millis)}{suffix}"


def new_order_number(at: datetime) -> str:
    """Time-ordered prefix plus random suffix keeps numbers unique under bursts."""
    return _stamped_id("LX", at, 4)


def new_defect_id(at: datetime) -> str:
    return _stamped_id("DEF", at, 4)


def new_tracking_number(at: datetime) -> str:
    return _stamped_id("TRK", at, 4)
