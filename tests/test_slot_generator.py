from datetime import date, time, timedelta

import pytest

from conftest import SLOT_DATE, make_court
from models import Booking, TimeSlot, db
from models import booking as booking_status
from services.availability import court_availability
from services.errors import NotFound, PolicyViolation, SlotUnavailable, ValidationError
from services.slot_generator import plan_slots

SUNDAY = date(2026, 3, 8)


class TestPlanSlots:
    def test_full_day(self):
        out = plan_slots(time(6, 0), time(22, 0), 60)
        assert len(out) == 16
        assert out[0] == (time(6, 0), time(7, 0))
        assert out[-1] == (time(21, 0), time(22, 0))

    def test_window_is_intersected_with_hours(self):
        out = plan_slots(time(6, 0), time(22, 0), 60, window_start=time(18, 0), window_end=time(23, 0))
        assert [s for s, _ in out] == [time(18, 0), time(19, 0), time(20, 0), time(21, 0)]

    def test_partial_trailing_slot_dropped(self):
        out = plan_slots(time(6, 0), time(8, 30), 60)
        assert out == [(time(6, 0), time(7, 0)), (time(7, 0), time(8, 0))]

    def test_window_outside_hours(self):
        with pytest.raises(ValidationError):
            plan_slots(time(6, 0), time(22, 0), 60, window_start=time(22, 0), window_end=time(23, 0))

    def test_zero_duration(self):
        with pytest.raises(ValidationError):
            plan_slots(time(6, 0), time(22, 0), 0)


class TestGenerateDay:
    def test_generates_from_operating_hours(self, engine, court):
        created = engine.slots.generate_day(court.id, SLOT_DATE)

        assert len(created) == 16
        assert all(s.price == court.price_per_hour for s in created)
        assert TimeSlot.query.filter_by(court_id=court.id, date=SLOT_DATE).count() == 16

    def test_custom_duration_and_price(self, engine, court):
        created = engine.slots.generate_day(court.id, SLOT_DATE, duration_minutes=90, price=70000)
        assert len(created) == 10
        assert created[0].end_time == time(7, 30)
        assert created[0].price == 70000

    def test_closed_day(self, engine, court):
        with pytest.raises(PolicyViolation):
            engine.slots.generate_day(court.id, SUNDAY)
        assert TimeSlot.query.filter_by(date=SUNDAY).count() == 0

    def test_unknown_court(self, engine, facility):
        with pytest.raises(NotFound):
            engine.slots.generate_day(999, SLOT_DATE)

    def test_regenerate_replaces_free_slots(self, engine, court, day_slots):
        engine.slots.generate_day(court.id, SLOT_DATE, duration_minutes=120)
        assert TimeSlot.query.filter_by(court_id=court.id, date=SLOT_DATE).count() == 8

    def test_regenerate_refuses_when_booked(self, engine, court, reserve):
        reserve(hour=18)
        reserve(hour=20, user_id="player-2")

        with pytest.raises(SlotUnavailable) as exc:
            engine.slots.generate_day(court.id, SLOT_DATE)

        starts = [c["start_time"] for c in exc.value.conflicts]
        assert starts == ["18:00", "20:00"]
        assert TimeSlot.query.filter_by(court_id=court.id, date=SLOT_DATE).count() == 16

    def test_regenerate_keeps_blocks(self, engine, court, day_slots):
        engine.slots.block_slots(court.id, SLOT_DATE, time(10, 0), time(11, 0), reason="Maintenance")
        engine.slots.generate_day(court.id, SLOT_DATE)

        slot = TimeSlot.query.filter_by(court_id=court.id, date=SLOT_DATE, start_time=time(10, 0)).one()
        assert slot.is_blocked
        assert slot.block_reason == "Maintenance"

    def test_regenerate_detaches_cancelled_bookings(self, engine, court, reserve):
        booking = reserve(hour=18)
        engine.bookings.cancel(booking.id, actor="player-1")

        engine.slots.generate_day(court.id, SLOT_DATE)

        booking = db.session.get(Booking, booking.id)
        assert booking.status == booking_status.CANCELLED
        assert booking.time_slot_id is None
        assert booking.start_time == time(18, 0)

    def test_courts_are_independent(self, engine, facility, court, reserve):
        other = make_court(facility, name="Court 2")
        reserve(hour=18)
        assert len(engine.slots.generate_day(other.id, SLOT_DATE)) == 16


class TestGenerateRange:
    def test_skips_closed_days(self, engine, court):
        # Wed..Mon; Sunday closed
        counts = engine.slots.generate_range(court.id, SLOT_DATE, 6)

        assert counts[SUNDAY.isoformat()] == 0
        assert counts[SLOT_DATE.isoformat()] == 16
        assert sum(counts.values()) == 16 * 5

    def test_days_must_be_positive(self, engine, court):
        with pytest.raises(ValidationError):
            engine.slots.generate_range(court.id, SLOT_DATE, 0)


class TestBlocking:
    def test_block_and_unblock(self, engine, court, day_slots):
        blocked = engine.slots.block_slots(court.id, SLOT_DATE, time(9, 30), time(11, 0))
        # 09:00 overlaps 09:30-11:00 as well
        assert [s.start_time for s in blocked] == [time(9, 0), time(10, 0)]

        slot = engine.slots.unblock_slot(blocked[0].id)
        assert not slot.is_blocked
        assert slot.block_reason is None

    def test_cannot_block_booked(self, engine, court, reserve):
        reserve(hour=18)
        with pytest.raises(SlotUnavailable):
            engine.slots.block_slots(court.id, SLOT_DATE, time(17, 0), time(19, 0))

    def test_cannot_block_past(self, engine, court, clock, day_slots):
        clock.advance(days=3)
        with pytest.raises(ValidationError):
            engine.slots.block_slots(court.id, SLOT_DATE, time(10, 0), time(11, 0))

    def test_nothing_to_block(self, engine, court):
        with pytest.raises(NotFound):
            engine.slots.block_slots(court.id, SLOT_DATE + timedelta(days=1), time(10, 0), time(11, 0))


class TestAvailability:
    def test_reports_status_per_slot(self, engine, court, reserve):
        reserve(hour=18)
        engine.slots.block_slots(court.id, SLOT_DATE, time(6, 0), time(7, 0), reason="Cleaning")

        views = court_availability(court.id, SLOT_DATE)
        by_start = {v.start_time: v for v in views}

        assert [v.start_time for v in views] == sorted(by_start)
        assert by_start[time(18, 0)].status == "booked"
        assert by_start[time(6, 0)].status == "blocked"
        assert by_start[time(6, 0)].to_dict()["block_reason"] == "Cleaning"
        assert by_start[time(7, 0)].to_dict()["available"] is True
        assert by_start[time(7, 0)].to_dict()["price"] == 500.0

    def test_empty_day(self, engine, court):
        assert court_availability(court.id, SLOT_DATE) == []
