import logging

from sqlalchemy import or_, update

from models import db
from models import booking as booking_status
from models.booking import Booking
from models.coupon import Coupon, CouponRedemption
from services.errors import NotFound, PolicyViolation

logger = logging.getLogger(__name__)


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def lookup_coupon(code: str):
    code = normalize_code(code)
    if not code:
        return None
    return Coupon.query.filter_by(code=code).first()


def _held(coupon, user_id=None) -> int:
    """PENDING bookings already carrying this coupon; they count against its limits."""
    query = Booking.query.filter_by(applied_coupon_code=coupon.code, status=booking_status.PENDING)
    if user_id is not None:
        query = query.filter_by(user_id=str(user_id))
    return query.count()


def validate_coupon(coupon, user_id, base_amount: int, now):
    if not coupon.is_active:
        raise PolicyViolation("Coupon is no longer active", coupon=coupon.code)
    if now < coupon.valid_from:
        raise PolicyViolation("Coupon is not valid yet", coupon=coupon.code)
    if now > coupon.valid_until:
        raise PolicyViolation("Coupon has expired", coupon=coupon.code)
    if coupon.usage_limit is not None and coupon.current_usage + _held(coupon) >= coupon.usage_limit:
        raise PolicyViolation("Coupon usage limit exceeded", coupon=coupon.code)
    if coupon.min_booking_amount is not None and base_amount < coupon.min_booking_amount:
        raise PolicyViolation(
            "Booking amount is below the coupon minimum",
            coupon=coupon.code,
            min_booking_amount=coupon.min_booking_amount,
        )
    if coupon.user_usage_limit is not None:
        used = CouponRedemption.query.filter_by(coupon_id=coupon.id, user_id=str(user_id)).count()
        used += _held(coupon, user_id)
        if used >= coupon.user_usage_limit:
            raise PolicyViolation("You have exceeded the usage limit for this coupon", coupon=coupon.code)
    return coupon


def resolve_coupon(code, user_id, base_amount: int, now):
    """Look up and validate ``code``; ``None`` when no code was supplied."""
    if not normalize_code(code):
        return None
    coupon = lookup_coupon(code)
    if coupon is None:
        raise NotFound("Invalid coupon code", coupon=normalize_code(code))
    return validate_coupon(coupon, user_id, base_amount, now)


def redeem(booking) -> bool:
    """Count the booking's coupon as used. Runs inside the confirm transaction.

    The increment is conditional on the usage limit. When it is already
    reached nothing is recorded and False is returned; the booking was paid
    at the quoted price, so confirmation goes ahead regardless.
    """
    if not booking.applied_coupon_code or not booking.discount_amount:
        return True
    coupon = lookup_coupon(booking.applied_coupon_code)
    if coupon is None:
        logger.warning("coupon_missing_on_redeem", extra={"booking_id": booking.public_id})
        return False
    result = db.session.execute(
        update(Coupon)
        .where(
            Coupon.id == coupon.id,
            or_(Coupon.usage_limit.is_(None), Coupon.current_usage < Coupon.usage_limit),
        )
        .values(current_usage=Coupon.current_usage + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning("coupon_limit_reached_on_redeem",
                       extra={"booking_id": booking.public_id, "coupon": coupon.code})
        return False
    db.session.add(CouponRedemption(
        coupon_id=coupon.id,
        booking_id=booking.id,
        user_id=booking.user_id,
        discount_amount=booking.discount_amount,
    ))
    return True


def release(booking):
    """Undo ``redeem`` for a cancelled booking. No-op if it was never redeemed."""
    redemption = CouponRedemption.query.filter_by(booking_id=booking.id).first()
    if redemption is None:
        return
    db.session.execute(
        update(Coupon)
        .where(Coupon.id == redemption.coupon_id, Coupon.current_usage > 0)
        .values(current_usage=Coupon.current_usage - 1)
    )
    db.session.delete(redemption)
