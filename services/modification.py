import logging
from datetime import datetime, timedelta

from sqlalchemy import update

from models import db
from models import booking as booking_status
from models.booking import Booking
from services.booking_service import claim_slot, release_slot, slot_start
from services.errors import AlreadyFinalized, PolicyViolation, SlotUnavailable, ValidationError
from services.pricing import DateChangeFee, to_major
from utils.audit import log_event
from utils.timeparse import format_time

logger = logging.getLogger(__name__)


class ModificationPolicy:
    """When a confirmed booking may be moved, and what moving it costs."""

    def __init__(self, settings, fee_schedule=None):
        self.settings = settings
        self.fee_schedule = fee_schedule or DateChangeFee(settings.date_change_fee)

    def check_modifiable(self, booking, new_date, now: datetime):
        if booking.status != booking_status.CONFIRMED:
            raise PolicyViolation("Only confirmed bookings can be modified", status=booking.status)

        if slot_start(booking) - now <= self.settings.modify_notice:
            hours = self.settings.modify_notice.total_seconds() / 3600
            raise PolicyViolation(f"Cannot modify booking less than {hours:g} hours before start time")

        earliest = now.date() + timedelta(days=self.settings.modify_min_days_ahead)
        latest = now.date() + timedelta(days=self.settings.modify_max_days_ahead)
        if not earliest <= new_date <= latest:
            raise PolicyViolation(
                "New date must be between "
                f"{self.settings.modify_min_days_ahead} and {self.settings.modify_max_days_ahead} days from today",
                earliest=earliest.isoformat(),
                latest=latest.isoformat(),
            )


class ModificationService:
    def __init__(self, bookings, policy: ModificationPolicy):
        self.bookings = bookings
        self.policy = policy

    def _target(self, booking, new_date, new_start):
        new_slot = self.bookings.find_slot(booking.court_id, new_date, new_start)
        new_end = (datetime.combine(new_date, new_start) + timedelta(minutes=booking.total_minutes)).time()
        if new_slot.end_time != new_end:
            raise ValidationError(
                "New slot must have the same duration as the booking",
                duration_minutes=booking.total_minutes,
            )
        if new_slot.id == booking.time_slot_id:
            raise ValidationError("Booking is already in that slot")
        return new_slot

    def modification_quote(self, booking_id, new_date, new_start, user_id=None) -> dict:
        booking = self.bookings.get(booking_id, user_id=user_id)
        self.policy.check_modifiable(booking, new_date, self.bookings.clock())
        new_slot = self._target(booking, new_date, new_start)
        fee = self.policy.fee_schedule.fee(booking, new_date, new_start, new_slot)
        return {
            "fee": to_major(fee),
            "original_amount": to_major(booking.amount_due),
            "new_total": to_major(booking.amount_due + fee),
            "available": not (new_slot.is_booked or new_slot.is_blocked),
        }

    def modify(self, booking_id, new_date, new_start, user_id=None) -> Booking:
        """Move a confirmed booking to another slot on the same court.

        The new slot is claimed, the booking repointed and the old slot freed in
        one transaction. If the new slot cannot be claimed nothing changes.
        """
        booking = self.bookings.get(booking_id, user_id=user_id)
        now = self.bookings.clock()
        self.policy.check_modifiable(booking, new_date, now)
        new_slot = self._target(booking, new_date, new_start)
        fee = self.policy.fee_schedule.fee(booking, new_date, new_start, new_slot)

        old = {
            "date": booking.booking_date.isoformat(),
            "start_time": format_time(booking.start_time),
            "slot_id": booking.time_slot_id,
        }
        old_slot_id = booking.time_slot_id

        if not claim_slot(new_slot.id):
            db.session.rollback()
            raise SlotUnavailable("The selected time slot is not available",
                                  date=new_date.isoformat(), start_time=format_time(new_start))

        moved = db.session.execute(
            update(Booking)
            .where(
                Booking.id == booking.id,
                Booking.status == booking_status.CONFIRMED,
                Booking.time_slot_id == old_slot_id,
            )
            .values(
                time_slot_id=new_slot.id,
                booking_date=new_slot.date,
                start_time=new_slot.start_time,
                end_time=new_slot.end_time,
                modification_fee=Booking.modification_fee + fee,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if moved.rowcount != 1:
            # booking was cancelled or moved concurrently; undo the claim
            db.session.rollback()
            raise AlreadyFinalized("Booking changed while modifying, please reload")

        release_slot(old_slot_id)
        db.session.commit()

        booking = self.bookings.get(booking.id)
        logger.info("booking_modified", extra={"booking_id": booking.public_id, "fee": fee})
        log_event(
            "BOOKING_MODIFIED",
            actor=booking.user_id,
            entity="booking",
            entity_id=booking.public_id,
            from_status=booking.status,
            to_status=booking.status,
            metadata={
                "from": old,
                "to": {"date": new_date.isoformat(), "start_time": format_time(new_start),
                       "slot_id": new_slot.id},
                "modification_fee": fee,
            },
        )
        return booking
