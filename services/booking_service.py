"""Booking lifecycle: reserve, confirm, cancel, expire and complete.

This is the only code that flips ``TimeSlot.is_booked``. Every state change is
a conditional UPDATE (compare-and-swap on the current status or occupancy),
so concurrent requests on the same slot or booking serialise on that row and
the loser sees zero affected rows instead of a lost update. Requests on
different slots never contend.
"""
import logging
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from models import db
from models import booking as booking_status
from models import payment as payment_status
from models.booking import Booking
from models.court import Court
from models.payment import Payment
from models.slot import TimeSlot
from services import coupons
from services.errors import AlreadyFinalized, NotFound, PolicyViolation, SlotUnavailable, ValidationError
from services.pricing import FullRelease, quote
from utils.audit import log_event, record_transition
from utils.clock import utcnow
from utils.timeparse import format_time

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


def slot_start(booking) -> datetime:
    return datetime.combine(booking.booking_date, booking.start_time)


def slot_end(booking) -> datetime:
    return datetime.combine(booking.booking_date, booking.end_time)


def claim_slot(slot_id: int) -> bool:
    """Atomically mark a free, unblocked slot as booked. False if someone got there first."""
    result = db.session.execute(
        update(TimeSlot)
        .where(
            TimeSlot.id == slot_id,
            TimeSlot.is_booked.is_(False),
            TimeSlot.is_blocked.is_(False),
        )
        .values(is_booked=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def release_slot(slot_id) -> None:
    if slot_id is None:
        return
    db.session.execute(
        update(TimeSlot)
        .where(TimeSlot.id == slot_id)
        .values(is_booked=False)
        .execution_options(synchronize_session=False)
    )


def _swap_status(booking, from_status: str, **values) -> bool:
    result = db.session.execute(
        update(Booking)
        .where(Booking.id == booking.id, Booking.status == from_status)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


class BookingService:
    def __init__(self, settings, clock=utcnow, cancellation_policy=None):
        self.settings = settings
        self.clock = clock
        self.cancellation_policy = cancellation_policy or FullRelease()

    # ---------- lookups ----------

    def get(self, booking_id, user_id=None) -> Booking:
        if isinstance(booking_id, int):
            booking = db.session.get(Booking, booking_id)
        else:
            booking = Booking.query.filter_by(public_id=str(booking_id)).first()
        if not booking or (user_id is not None and booking.user_id != str(user_id)):
            raise NotFound("Booking not found")
        return booking

    def find_slot(self, court_id: int, slot_date, start_time) -> TimeSlot:
        slot = TimeSlot.query.filter_by(court_id=court_id, date=slot_date, start_time=start_time).first()
        if not slot:
            raise NotFound(
                "Time slot not found",
                court_id=court_id,
                date=slot_date.isoformat(),
                start_time=format_time(start_time),
            )
        return slot

    def price_slot(self, slot: TimeSlot, court: Court, user_id, coupon_code=None):
        price_per_hour = slot.price if slot.price is not None else court.price_per_hour
        undiscounted = quote(price_per_hour, slot.start_time, slot.end_time,
                             self.settings.platform_fee_rate, self.settings.tax_rate)
        coupon = coupons.resolve_coupon(coupon_code, user_id, undiscounted.base_amount, self.clock())
        if coupon is None:
            return undiscounted
        return quote(price_per_hour, slot.start_time, slot.end_time,
                     self.settings.platform_fee_rate, self.settings.tax_rate, coupon=coupon)

    # ---------- transitions ----------

    def reserve(self, court_id: int, slot_date, start_time, end_time, user_id, coupon_code=None) -> Booking:
        """Hold the slot for ``user_id`` and create a PENDING booking with its payment row."""
        if end_time <= start_time:
            raise ValidationError("end_time must be after start_time")

        court = db.session.get(Court, court_id)
        if not court or not court.is_active:
            raise NotFound("Court not found", court_id=court_id)

        slot = self.find_slot(court_id, slot_date, start_time)
        if slot.end_time != end_time:
            raise ValidationError(
                "Requested times do not match the slot",
                start_time=format_time(slot.start_time),
                end_time=format_time(slot.end_time),
            )

        now = self.clock()
        if datetime.combine(slot.date, slot.start_time) <= now:
            raise ValidationError("Cannot book past/started slots")

        if slot.is_booked or slot.is_blocked:
            raise SlotUnavailable(block_reason=slot.block_reason if slot.is_blocked else None)

        q = self.price_slot(slot, court, user_id, coupon_code)

        if not claim_slot(slot.id):
            db.session.rollback()
            logger.info("reserve_lost_race", extra={"slot_id": slot.id, "user_id": user_id})
            raise SlotUnavailable()

        booking = Booking(
            user_id=str(user_id),
            facility_id=court.facility_id,
            court_id=court.id,
            time_slot_id=slot.id,
            booking_date=slot.date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            total_minutes=q.total_minutes,
            status=booking_status.PENDING,
            price_per_hour=q.price_per_hour,
            base_amount=q.base_amount,
            platform_fee=q.platform_fee,
            tax=q.tax,
            discount_amount=q.discount_amount,
            final_amount=q.final_amount,
            applied_coupon_code=q.coupon_code,
            created_at=now,
            updated_at=now,
        )
        db.session.add(booking)
        db.session.flush()
        db.session.add(Payment(
            booking_id=booking.id,
            amount=q.final_amount,
            currency=self.settings.currency,
            status=payment_status.PENDING,
            session_started_at=now,
            created_at=now,
            updated_at=now,
        ))

        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise SlotUnavailable()

        logger.info("booking_reserved", extra={"booking_id": booking.public_id, "slot_id": slot.id})
        record_transition(user_id, booking, None, booking_status.PENDING,
                          metadata={"slot_id": slot.id, "final_amount": booking.final_amount})
        return booking

    def confirm(self, booking_id, payment_proof=None, actor="gateway") -> Booking:
        """PENDING -> CONFIRMED and payment -> COMPLETED, in one transaction."""
        proof = payment_proof or {}
        booking = self.get(booking_id)
        now = self.clock()

        if not _swap_status(booking, booking_status.PENDING,
                            status=booking_status.CONFIRMED, confirmed_at=now, updated_at=now):
            db.session.rollback()
            booking = self.get(booking.id)
            raise AlreadyFinalized(f"Booking is already {booking.status}", status=booking.status)

        payment = booking.payment
        payment.status = payment_status.COMPLETED
        payment.paid_at = now
        payment.failure_reason = None
        if proof.get("transaction_id"):
            payment.transaction_id = proof["transaction_id"]
        if proof.get("session_id") and not payment.gateway_session_id:
            payment.gateway_session_id = proof["session_id"]
        redeemed = coupons.redeem(booking)
        db.session.commit()

        booking = self.get(booking.id)
        logger.info("booking_confirmed", extra={"booking_id": booking.public_id})
        if not redeemed:
            log_event("COUPON_LIMIT_EXCEEDED", actor=actor, entity="booking", entity_id=booking.public_id,
                      metadata={"coupon": booking.applied_coupon_code})
        record_transition(actor, booking, booking_status.PENDING, booking_status.CONFIRMED,
                          metadata={"transaction_id": payment.transaction_id})
        return booking

    def _cancel(self, booking, from_status: str, actor, reason, payment_to=payment_status.CANCELLED,
                refund_amount=None) -> bool:
        now = self.clock()
        if not _swap_status(booking, from_status,
                            status=booking_status.CANCELLED, cancelled_at=now, cancelled_by=str(actor),
                            cancel_reason=reason, refund_amount=refund_amount, updated_at=now):
            db.session.rollback()
            return False

        release_slot(booking.time_slot_id)
        payment = booking.payment
        if payment is not None and payment.status != payment_status.COMPLETED:
            payment.status = payment_to
            payment.failure_reason = reason
        coupons.release(booking)
        db.session.commit()
        return True

    def cancel(self, booking_id, actor, reason=None, user_id=None) -> Booking:
        """Cancel a PENDING booking at any time, or a CONFIRMED one outside the notice window."""
        booking = self.get(booking_id, user_id=user_id)
        from_status = booking.status
        if from_status in booking_status.TERMINAL_STATUSES:
            raise AlreadyFinalized(f"Booking is already {from_status}", status=from_status)

        refund_amount = None
        if from_status == booking_status.CONFIRMED:
            now = self.clock()
            if slot_start(booking) - now <= self.settings.cancel_notice:
                hours = self.settings.cancel_notice.total_seconds() / 3600
                raise PolicyViolation(f"Cancellation not allowed within {hours:g} hours of start")
            fee = self.cancellation_policy.fee(booking, now)
            refund_amount = max(0, booking.amount_due - fee)

        if not self._cancel(booking, from_status, actor, reason, refund_amount=refund_amount):
            booking = self.get(booking.id)
            raise AlreadyFinalized(f"Booking is already {booking.status}", status=booking.status)

        booking = self.get(booking.id)
        logger.info("booking_cancelled", extra={"booking_id": booking.public_id, "actor": actor})
        record_transition(actor, booking, from_status, booking_status.CANCELLED,
                          metadata={"reason": reason, "refund_amount": refund_amount})
        return booking

    def is_expired(self, booking, now=None) -> bool:
        """True once the booking is older than the payment-session TTL. Retries do not extend it."""
        now = now or self.clock()
        return now - booking.created_at > self.settings.session_ttl

    def expire_reap(self, booking_id, force: bool = False):
        """System cancel of an abandoned PENDING booking.

        Returns the cancelled booking, or None when there is nothing to reap:
        the booking moved on, its payment completed, or (unless ``force``,
        used when the gateway itself reports expiry) the TTL has not elapsed.
        """
        booking = self.get(booking_id)
        if booking.status != booking_status.PENDING:
            return None
        if booking.payment is not None and booking.payment.status == payment_status.COMPLETED:
            return None
        if not force and not self.is_expired(booking):
            return None

        if not self._cancel(booking, booking_status.PENDING, SYSTEM_ACTOR, "Payment session expired"):
            return None

        booking = self.get(booking.id)
        logger.info("booking_expired", extra={"booking_id": booking.public_id})
        record_transition(SYSTEM_ACTOR, booking, booking_status.PENDING, booking_status.CANCELLED,
                          metadata={"reason": "Payment session expired"})
        return booking

    def complete(self, booking_id, actor=SYSTEM_ACTOR) -> Booking:
        booking = self.get(booking_id)
        if booking.status == booking_status.COMPLETED:
            return booking
        if booking.status == booking_status.CANCELLED:
            raise AlreadyFinalized("Booking is already CANCELLED", status=booking.status)
        if booking.status != booking_status.CONFIRMED:
            raise PolicyViolation("Only confirmed bookings can be completed", status=booking.status)

        now = self.clock()
        if now <= slot_end(booking):
            raise PolicyViolation("Booking has not ended yet")

        if not _swap_status(booking, booking_status.CONFIRMED,
                            status=booking_status.COMPLETED, completed_at=now, updated_at=now):
            db.session.rollback()
            booking = self.get(booking.id)
            if booking.status == booking_status.COMPLETED:
                return booking
            raise AlreadyFinalized(f"Booking is already {booking.status}", status=booking.status)
        db.session.commit()

        booking = self.get(booking.id)
        record_transition(actor, booking, booking_status.CONFIRMED, booking_status.COMPLETED)
        return booking

    # ---------- sweep queries ----------

    def find_expired(self) -> list[int]:
        cutoff = self.clock() - self.settings.session_ttl
        rows = (
            db.session.query(Booking.id)
            .join(Payment, Payment.booking_id == Booking.id)
            .filter(
                Booking.status == booking_status.PENDING,
                Payment.status != payment_status.COMPLETED,
                Booking.created_at < cutoff,
            )
            .order_by(Booking.id.asc())
            .all()
        )
        return [r.id for r in rows]

    def find_finished(self) -> list[int]:
        now = self.clock()
        rows = (
            Booking.query
            .filter(Booking.status == booking_status.CONFIRMED, Booking.booking_date <= now.date())
            .order_by(Booking.id.asc())
            .all()
        )
        return [b.id for b in rows if slot_end(b) < now]
