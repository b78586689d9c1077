from datetime import date, time, timedelta

import pytest

from conftest import SLOT_DATE
from models import AuditLog, TimeSlot
from models import booking as booking_status
from services.errors import PolicyViolation, SlotUnavailable, ValidationError

# Monday 08:00 + 25h
TUESDAY = date(2026, 3, 3)
THURSDAY = date(2026, 3, 5)


def _slot(court, day, hour):
    return TimeSlot.query.filter_by(court_id=court.id, date=day, start_time=time(hour, 0)).one()


@pytest.fixture
def confirmed(engine, court):
    """Confirmed booking on Tuesday 09:00, 25 hours from now."""
    for day in (TUESDAY, SLOT_DATE, THURSDAY):
        engine.slots.generate_day(court.id, day)
    booking = engine.bookings.reserve(court.id, TUESDAY, time(9, 0), time(10, 0), "player-1")
    return engine.bookings.confirm(booking.id)


class TestModificationQuote:
    def test_quote_for_other_date(self, engine, confirmed):
        result = engine.modifications.modification_quote(confirmed.public_id, SLOT_DATE, time(10, 0))

        assert result == {
            "fee": 50.0,
            "original_amount": 607.7,
            "new_total": 657.7,
            "available": True,
        }

    def test_same_day_move_is_free(self, engine, confirmed):
        result = engine.modifications.modification_quote(confirmed.public_id, TUESDAY, time(15, 0))
        assert result["fee"] == 0.0

    def test_quote_reports_taken_slot(self, engine, court, confirmed):
        engine.bookings.reserve(court.id, SLOT_DATE, time(10, 0), time(11, 0), "player-2")
        result = engine.modifications.modification_quote(confirmed.public_id, SLOT_DATE, time(10, 0))
        assert result["available"] is False


class TestModify:
    def test_moves_booking_and_swaps_slots(self, engine, court, confirmed):
        moved = engine.modifications.modify(confirmed.public_id, SLOT_DATE, time(10, 0), user_id="player-1")

        assert moved.status == booking_status.CONFIRMED
        assert moved.booking_date == SLOT_DATE
        assert moved.start_time == time(10, 0)
        assert moved.end_time == time(11, 0)
        assert moved.modification_fee == 5000
        assert moved.amount_due == 60770 + 5000
        # the original price breakdown is untouched
        assert moved.final_amount == 60770

        assert _slot(court, SLOT_DATE, 10).is_booked
        assert not _slot(court, TUESDAY, 9).is_booked
        assert moved.time_slot_id == _slot(court, SLOT_DATE, 10).id
        assert AuditLog.query.filter_by(action="BOOKING_MODIFIED", entity_id=moved.public_id).count() == 1

    def test_fees_accumulate(self, engine, confirmed):
        engine.modifications.modify(confirmed.public_id, SLOT_DATE, time(10, 0))
        moved = engine.modifications.modify(confirmed.public_id, THURSDAY, time(10, 0))
        assert moved.modification_fee == 10000

    def test_unavailable_target_leaves_booking_untouched(self, engine, court, confirmed):
        engine.bookings.reserve(court.id, SLOT_DATE, time(10, 0), time(11, 0), "player-2")

        with pytest.raises(SlotUnavailable):
            engine.modifications.modify(confirmed.public_id, SLOT_DATE, time(10, 0))

        booking = engine.bookings.get(confirmed.id)
        assert booking.booking_date == TUESDAY
        assert booking.start_time == time(9, 0)
        assert booking.modification_fee == 0
        assert _slot(court, TUESDAY, 9).is_booked

    def test_blocked_target(self, engine, court, confirmed):
        engine.slots.block_slots(court.id, SLOT_DATE, time(10, 0), time(11, 0))
        with pytest.raises(SlotUnavailable):
            engine.modifications.modify(confirmed.public_id, SLOT_DATE, time(10, 0))

    def test_inside_notice_window(self, engine, clock, confirmed):
        clock.advance(hours=2)  # 23h before start
        with pytest.raises(PolicyViolation):
            engine.modifications.modify(confirmed.public_id, SLOT_DATE, time(10, 0))

    def test_new_date_too_far_ahead(self, engine, court, confirmed):
        far = date(2026, 4, 2)  # 31 days out
        with pytest.raises(PolicyViolation):
            engine.modifications.modify(confirmed.public_id, far, time(10, 0))

    def test_new_date_today(self, engine, court, confirmed):
        engine.slots.generate_day(court.id, date(2026, 3, 2))
        with pytest.raises(PolicyViolation):
            engine.modifications.modify(confirmed.public_id, date(2026, 3, 2), time(20, 0))

    def test_pending_cannot_be_modified(self, engine, court, confirmed):
        pending = engine.bookings.reserve(court.id, SLOT_DATE, time(18, 0), time(19, 0), "player-1")
        with pytest.raises(PolicyViolation):
            engine.modifications.modify(pending.public_id, THURSDAY, time(18, 0))

    def test_same_slot_rejected(self, engine, confirmed):
        with pytest.raises(ValidationError):
            engine.modifications.modify(confirmed.public_id, TUESDAY, time(9, 0))

    def test_duration_mismatch_rejected(self, engine, court, confirmed):
        engine.slots.generate_day(court.id, THURSDAY + timedelta(days=1), duration_minutes=90)
        with pytest.raises(ValidationError):
            engine.modifications.modify(confirmed.public_id, THURSDAY + timedelta(days=1), time(9, 0))
