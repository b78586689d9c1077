"""Turns a facility's operating hours into bookable time slots for a court."""
import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError

from models import db
from models.booking import ACTIVE_STATUSES, Booking
from models.court import Court
from models.facility import OperatingHours
from models.slot import TimeSlot
from services.errors import NotFound, PolicyViolation, SlotUnavailable, ValidationError
from utils.audit import log_event
from utils.timeparse import format_time

logger = logging.getLogger(__name__)

_ANCHOR = date(2000, 1, 1)


def get_operating_hours(facility_id: int, day_of_week: int):
    """Hours for ``day_of_week`` (0 = Monday), or None when the facility is closed that day."""
    hours = OperatingHours.query.filter_by(facility_id=facility_id, day_of_week=day_of_week).first()
    if hours is None or hours.is_closed or hours.open_time is None or hours.close_time is None:
        return None
    return hours


def plan_slots(open_time: time, close_time: time, duration_minutes: int,
               window_start: time = None, window_end: time = None) -> list[tuple[time, time]]:
    """Consecutive [t, t + duration) intervals inside hours ∩ requested window."""
    if duration_minutes <= 0:
        raise ValidationError("Slot duration must be positive")

    start = max(open_time, window_start) if window_start else open_time
    end = min(close_time, window_end) if window_end else close_time
    if end <= start:
        raise ValidationError(
            "Requested window does not overlap operating hours",
            open_time=format_time(open_time),
            close_time=format_time(close_time),
        )

    step = timedelta(minutes=duration_minutes)
    current = datetime.combine(_ANCHOR, start)
    last = datetime.combine(_ANCHOR, end)

    out = []
    while current + step <= last:
        out.append((current.time(), (current + step).time()))
        current += step
    return out


def _slot_label(slot) -> dict:
    return {
        "slot_id": slot.id,
        "start_time": format_time(slot.start_time),
        "end_time": format_time(slot.end_time),
    }


class SlotGenerator:
    def __init__(self, settings, clock):
        self.settings = settings
        self.clock = clock

    def _court(self, court_id: int) -> Court:
        court = db.session.get(Court, court_id)
        if not court or not court.is_active:
            raise NotFound("Court not found", court_id=court_id)
        return court

    def generate_day(self, court_id: int, slot_date: date, duration_minutes: int = None,
                     price: int = None, window_start: time = None, window_end: time = None,
                     actor=None) -> list[TimeSlot]:
        """Replace ``slot_date``'s slots for the court.

        Fails without changing anything when the facility is closed or when
        any existing slot that day is booked.
        """
        court = self._court(court_id)
        duration = duration_minutes or self.settings.default_slot_minutes
        hours = get_operating_hours(court.facility_id, slot_date.weekday())
        if hours is None:
            raise PolicyViolation(
                "Facility is closed on this day",
                date=slot_date.isoformat(),
                day_of_week=slot_date.weekday(),
            )

        intervals = plan_slots(hours.open_time, hours.close_time, duration, window_start, window_end)
        if price is None:
            price = court.price_per_hour
        if price < 0:
            raise ValidationError("price must not be negative")

        existing = (
            TimeSlot.query
            .filter_by(court_id=court.id, date=slot_date)
            .order_by(TimeSlot.start_time.asc())
            .all()
        )
        booked = [s for s in existing if s.is_booked]
        if booked:
            raise SlotUnavailable(
                "Cannot regenerate slots: some slots on this date are booked",
                conflicts=[_slot_label(s) for s in booked],
                date=slot_date.isoformat(),
            )

        # Keep owner blocks on intervals that survive regeneration
        blocks = {s.start_time: s.block_reason for s in existing if s.is_blocked}

        existing_ids = [s.id for s in existing]
        if existing_ids:
            for s in existing:
                db.session.expunge(s)
            db.session.execute(
                update(Booking)
                .where(Booking.time_slot_id.in_(existing_ids), Booking.status.notin_(ACTIVE_STATUSES))
                .values(time_slot_id=None)
                .execution_options(synchronize_session=False)
            )
            # conditional delete: a reservation that lands between the read
            # above and this statement makes the row count come up short
            result = db.session.execute(
                delete(TimeSlot)
                .where(TimeSlot.id.in_(existing_ids), TimeSlot.is_booked.is_(False))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != len(existing_ids):
                db.session.rollback()
                raise SlotUnavailable("Slots for this date were booked concurrently, try again",
                                      date=slot_date.isoformat())

        created = []
        for start, end in intervals:
            slot = TimeSlot(
                court_id=court.id,
                date=slot_date,
                start_time=start,
                end_time=end,
                price=price,
                is_blocked=start in blocks,
                block_reason=blocks.get(start),
            )
            db.session.add(slot)
            created.append(slot)

        try:
            db.session.commit()
        except IntegrityError:
            # a concurrent regeneration or reservation touched the same day
            db.session.rollback()
            raise SlotUnavailable("Slots for this date changed concurrently, try again",
                                  date=slot_date.isoformat())

        logger.info("slots_generated", extra={"court_id": court.id, "date": slot_date.isoformat(),
                                              "count": len(created)})
        log_event("SLOTS_GENERATED", actor=actor, entity="court", entity_id=court.id,
                  metadata={"date": slot_date.isoformat(), "count": len(created),
                            "duration_minutes": duration})
        return created

    def generate_range(self, court_id: int, start_date: date, days: int, **kwargs) -> dict:
        """Generate ``days`` consecutive dates, skipping days the facility is closed."""
        if days <= 0:
            raise ValidationError("days must be positive")
        out = {}
        for offset in range(days):
            target = start_date + timedelta(days=offset)
            try:
                out[target.isoformat()] = len(self.generate_day(court_id, target, **kwargs))
            except PolicyViolation:
                out[target.isoformat()] = 0
        return out

    def block_slots(self, court_id: int, slot_date: date, start: time, end: time,
                    reason: str = None, actor=None) -> list[TimeSlot]:
        self._court(court_id)
        if end <= start:
            raise ValidationError("end_time must be after start_time")
        if slot_date < self.clock().date():
            raise ValidationError("Cannot block time slots in the past")

        slots = (
            TimeSlot.query
            .filter(
                TimeSlot.court_id == court_id,
                TimeSlot.date == slot_date,
                TimeSlot.start_time < end,
                TimeSlot.end_time > start,
            )
            .order_by(TimeSlot.start_time.asc())
            .all()
        )
        if not slots:
            raise NotFound("No time slots in that range", date=slot_date.isoformat())

        booked = [s for s in slots if s.is_booked]
        if booked:
            raise SlotUnavailable(
                "Cannot block time slots that are booked",
                conflicts=[_slot_label(s) for s in booked],
            )

        for s in slots:
            s.is_blocked = True
            s.block_reason = reason or "Blocked by owner"
        db.session.commit()

        log_event("SLOTS_BLOCKED", actor=actor, entity="court", entity_id=court_id,
                  metadata={"date": slot_date.isoformat(), "slot_ids": [s.id for s in slots],
                            "reason": reason})
        return slots

    def unblock_slot(self, slot_id: int, actor=None) -> TimeSlot:
        slot = db.session.get(TimeSlot, slot_id)
        if not slot:
            raise NotFound("Slot not found", slot_id=slot_id)
        slot.is_blocked = False
        slot.block_reason = None
        db.session.commit()

        log_event("SLOT_UNBLOCKED", actor=actor, entity="time_slot", entity_id=slot.id)
        return slot
