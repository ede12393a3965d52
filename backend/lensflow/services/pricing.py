"""Order price calculator: catalog lookup, party discount, urgency surcharge.

All amounts are integers in the smallest currency unit. Rounding is half-up
to the whole unit and is applied after the discount and again after the
surcharge; the surcharge is always computed on the discounted amount.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping

from ..domain_errors import ValidationError

EYES: tuple[str, ...] = ("od", "os")
DEFAULT_DISCOUNT_PERCENT = Decimal("5")
URGENT_SURCHARGE_PERCENT = Decimal("25")
_HUNDRED = Decimal(100)


@dataclass(frozen=True)
class EyeLine:
    eye: str
    characteristic: str | None
    qty: int


@dataclass(frozen=True)
class PriceBreakdown:
    base_price: int
    discount_percent: float
    discount_amount: int
    urgent_surcharge: int
    total_price: int

    @property
    def price_after_discount(self) -> int:
        return self.base_price - self.discount_amount


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _as_decimal(value: float | int | str | Decimal | None, default: Decimal) -> Decimal:
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def eye_lines_from_config(config: Mapping) -> list[EyeLine]:
    """Extract (characteristic, qty) per eye from a lens configuration mapping."""
    eyes = (config or {}).get("eyes") or {}
    lines: list[EyeLine] = []
    for eye in EYES:
        params = eyes.get(eye) or {}
        qty = params.get("qty", 1)
        lines.append(
            EyeLine(
                eye=eye,
                characteristic=params.get("characteristic") or None,
                qty=int(qty if qty is not None else 1),
            )
        )
    return lines


def base_price(lines: list[EyeLine], catalog: Mapping[str, int]) -> int:
    total = 0
    for line in lines:
        if line.qty < 1:
            raise ValidationError(
                f"Lens quantity for {line.eye.upper()} must be at least 1",
                code="LENS_QTY_INVALID",
                details={"eye": line.eye, "qty": line.qty},
            )
        unit_price = catalog.get(line.characteristic) if line.characteristic else None
        if unit_price is None:
            raise ValidationError(
                f"No catalog price for {line.eye.upper()} lens characteristic",
                code="LENS_PRICE_NOT_FOUND",
                details={"eye": line.eye, "characteristic": line.characteristic},
            )
        total += int(unit_price) * line.qty
    return total


def calculate_price(
    *,
    lines: list[EyeLine],
    catalog: Mapping[str, int],
    discount_percent: float | Decimal | None,
    is_urgent: bool,
    urgent_surcharge_percent: int | Decimal = URGENT_SURCHARGE_PERCENT,
) -> PriceBreakdown:
    pct = _as_decimal(discount_percent, DEFAULT_DISCOUNT_PERCENT)
    if pct < 0 or pct > _HUNDRED:
        raise ValidationError(
            "Discount percent must be between 0 and 100",
            code="DISCOUNT_OUT_OF_RANGE",
            details={"discount_percent": str(pct)},
        )

    base = base_price(lines, catalog)
    discount_amount = round_half_up(Decimal(base) * pct / _HUNDRED)
    after_discount = base - discount_amount
    surcharge = 0
    if is_urgent:
        surcharge = round_half_up(
            Decimal(after_discount) * _as_decimal(urgent_surcharge_percent, URGENT_SURCHARGE_PERCENT) / _HUNDRED
        )

    return PriceBreakdown(
        base_price=base,
        discount_percent=float(pct),
        discount_amount=discount_amount,
        urgent_surcharge=surcharge,
        total_price=after_discount + surcharge,
    )
