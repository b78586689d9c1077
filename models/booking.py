import uuid

from models.db import db
from utils.clock import utcnow

PENDING = "PENDING"
CONFIRMED = "CONFIRMED"
CANCELLED = "CANCELLED"
COMPLETED = "COMPLETED"

ACTIVE_STATUSES = (PENDING, CONFIRMED)
TERMINAL_STATUSES = (CANCELLED, COMPLETED)


def _public_id() -> str:
    return uuid.uuid4().hex


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)
    public_id = db.Column(db.String(32), unique=True, nullable=False, default=_public_id, index=True)

    user_id = db.Column(db.String(64), nullable=False, index=True)
    facility_id = db.Column(db.Integer, db.ForeignKey("facilities.id"), nullable=False, index=True)
    court_id = db.Column(db.Integer, db.ForeignKey("courts.id"), nullable=False, index=True)
    # nulled when a past or cancelled slot is regenerated away; date/start/end stay on the booking
    time_slot_id = db.Column(db.Integer, db.ForeignKey("time_slots.id", ondelete="SET NULL"), nullable=True, index=True)

    booking_date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)
    total_minutes = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(20), nullable=False, default=PENDING, index=True)
    # status values: PENDING, CONFIRMED, CANCELLED, COMPLETED

    # smallest unit (paise)
    price_per_hour = db.Column(db.Integer, nullable=False)
    base_amount = db.Column(db.Integer, nullable=False)
    platform_fee = db.Column(db.Integer, nullable=False, default=0)
    tax = db.Column(db.Integer, nullable=False, default=0)
    discount_amount = db.Column(db.Integer, nullable=False, default=0)
    final_amount = db.Column(db.Integer, nullable=False)
    modification_fee = db.Column(db.Integer, nullable=False, default=0)
    refund_amount = db.Column(db.Integer, nullable=True)
    applied_coupon_code = db.Column(db.String(40), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    confirmed_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancelled_by = db.Column(db.String(64), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)

    payment = db.relationship("Payment", back_populates="booking", uselist=False)
    time_slot = db.relationship("TimeSlot")

    @property
    def amount_due(self) -> int:
        return self.final_amount + (self.modification_fee or 0)
