"""Booking price computation.

All amounts are integers in the currency's minor unit (paise for INR).
Rates are ``Decimal`` fractions and every component is rounded half-up to a
whole minor unit as soon as it is computed, so a quote never carries
floating-point residue. Conversion to major units happens only in
``to_major`` for presentation.
"""
from dataclasses import asdict, dataclass
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Protocol

from models.coupon import FIXED_AMOUNT, PERCENTAGE
from services.errors import ValidationError

_ONE = Decimal("1")
_HUNDRED = Decimal("100")


def _round(value: Decimal) -> int:
    return int(value.quantize(_ONE, rounding=ROUND_HALF_UP))


def to_major(amount: int) -> float:
    return float(Decimal(amount) / _HUNDRED)


def to_minor(amount) -> int:
    try:
        return _round(Decimal(str(amount)) * _HUNDRED)
    except (InvalidOperation, ValueError):
        raise ValidationError("Invalid amount", amount=str(amount))


def duration_minutes(start_time: time, end_time: time) -> int:
    anchor = date(2000, 1, 1)
    delta = datetime.combine(anchor, end_time) - datetime.combine(anchor, start_time)
    seconds = int(delta.total_seconds())
    if seconds <= 0:
        raise ValidationError("end_time must be after start_time")
    return seconds // 60


@dataclass(frozen=True)
class Quote:
    price_per_hour: int
    total_minutes: int
    base_amount: int
    platform_fee: int
    tax: int
    discount_amount: int
    final_amount: int
    coupon_code: Optional[str] = None

    def to_major(self) -> dict:
        out = asdict(self)
        for key in ("price_per_hour", "base_amount", "platform_fee", "tax", "discount_amount", "final_amount"):
            out[key] = to_major(out[key])
        out["total_hours"] = round(self.total_minutes / 60, 4)
        return out


def base_amount_for(price_per_hour: int, total_minutes: int) -> int:
    return _round(Decimal(price_per_hour) * Decimal(total_minutes) / Decimal(60))


def discount_for(coupon, base_amount: int) -> int:
    if coupon is None:
        return 0
    if coupon.discount_type == PERCENTAGE:
        discount = _round(Decimal(base_amount) * Decimal(coupon.discount_value) / _HUNDRED)
        if coupon.max_discount_amount is not None:
            discount = min(discount, coupon.max_discount_amount)
    elif coupon.discount_type == FIXED_AMOUNT:
        discount = min(coupon.discount_value, base_amount)
    else:
        raise ValidationError(f"Unknown discount type {coupon.discount_type}")
    return max(0, discount)


def quote(price_per_hour: int, start_time: time, end_time: time,
          platform_fee_rate: Decimal, tax_rate: Decimal, coupon=None) -> Quote:
    if price_per_hour < 0:
        raise ValidationError("price must not be negative")

    total_minutes = duration_minutes(start_time, end_time)
    base = base_amount_for(price_per_hour, total_minutes)
    platform_fee = _round(Decimal(base) * platform_fee_rate)
    # tax is levied on base + platform fee, not on base alone
    tax = _round(Decimal(base + platform_fee) * tax_rate)
    discount = discount_for(coupon, base)
    final = max(0, base + platform_fee + tax - discount)

    return Quote(
        price_per_hour=price_per_hour,
        total_minutes=total_minutes,
        base_amount=base,
        platform_fee=platform_fee,
        tax=tax,
        discount_amount=discount,
        final_amount=final,
        coupon_code=coupon.code if coupon is not None and discount else None,
    )


# ---------- Modification fee schedules ----------

class ModificationFeeSchedule(Protocol):
    def fee(self, booking, new_date: date, new_start: time, new_slot) -> int:
        ...


class NoModificationFee:
    def fee(self, booking, new_date, new_start, new_slot) -> int:
        return 0


class DateChangeFee:
    """Moving within the same day is free; moving to another date costs a flat fee."""

    def __init__(self, flat_fee: int):
        self.flat_fee = flat_fee

    def fee(self, booking, new_date, new_start, new_slot) -> int:
        if new_date == booking.booking_date:
            return 0
        return self.flat_fee


class PriceDifferenceFee:
    """Charges the base-price uplift when moving into a more expensive slot (e.g. peak hours)."""

    def fee(self, booking, new_date, new_start, new_slot) -> int:
        new_base = base_amount_for(new_slot.price, booking.total_minutes)
        return max(0, new_base - booking.base_amount)


# ---------- Cancellation fee policies ----------

class CancellationFeePolicy(Protocol):
    def fee(self, booking, now: datetime) -> int:
        ...


class FullRelease:
    def fee(self, booking, now) -> int:
        return 0
