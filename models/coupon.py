from models.db import db
from utils.clock import utcnow

PERCENTAGE = "PERCENTAGE"
FIXED_AMOUNT = "FIXED_AMOUNT"


class Coupon(db.Model):
    __tablename__ = "coupons"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(40), unique=True, nullable=False, index=True)  # stored upper-case

    discount_type = db.Column(db.String(20), nullable=False)  # PERCENTAGE, FIXED_AMOUNT
    # PERCENTAGE: whole percent; FIXED_AMOUNT: smallest unit
    discount_value = db.Column(db.Integer, nullable=False)
    min_booking_amount = db.Column(db.Integer, nullable=True)
    max_discount_amount = db.Column(db.Integer, nullable=True)

    usage_limit = db.Column(db.Integer, nullable=True)
    user_usage_limit = db.Column(db.Integer, nullable=True)
    current_usage = db.Column(db.Integer, nullable=False, default=0)

    valid_from = db.Column(db.DateTime, nullable=False)
    valid_until = db.Column(db.DateTime, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)


class CouponRedemption(db.Model):
    __tablename__ = "coupon_redemptions"

    id = db.Column(db.Integer, primary_key=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=False, index=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, unique=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    discount_amount = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
