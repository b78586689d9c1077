from datetime import time
from unittest.mock import patch

import pytest

from conftest import SLOT_DATE
from models import TimeSlot
from models import booking as booking_status
from services.errors import AlreadyFinalized, ExpiredSession
from services.sweeper import ExpirySweeper, complete_finished, reap_expired, sweep_once


def _slot(court, hour):
    return TimeSlot.query.filter_by(court_id=court.id, date=SLOT_DATE, start_time=time(hour, 0)).one()


class TestReapExpired:
    def test_reaps_after_ttl(self, engine, court, clock, book):
        booking, _ = book(hour=18)
        clock.advance(minutes=31)

        assert reap_expired(engine.bookings) == 1
        reaped = engine.bookings.get(booking.id)
        assert reaped.status == booking_status.CANCELLED
        assert reaped.cancel_reason == "Payment session expired"
        assert not _slot(court, 18).is_booked

    def test_leaves_fresh_bookings(self, engine, clock, book):
        book(hour=18)
        clock.advance(minutes=20)
        assert reap_expired(engine.bookings) == 0

    def test_retries_do_not_extend_ttl(self, engine, clock, book):
        booking, _ = book(hour=18)
        clock.advance(minutes=25)
        engine.payments.retry_payment(booking.public_id)
        clock.advance(minutes=4)

        assert reap_expired(engine.bookings) == 0
        clock.advance(minutes=2)
        assert reap_expired(engine.bookings) == 1
        assert engine.bookings.get(booking.id).status == booking_status.CANCELLED

    def test_repeated_retries_cannot_hold_slot(self, engine, court, clock, book):
        booking, _ = book(hour=18)
        clock.advance(minutes=29)
        engine.payments.retry_payment(booking.public_id)
        clock.advance(minutes=2)

        with pytest.raises(ExpiredSession):
            engine.payments.retry_payment(booking.public_id)
        assert engine.bookings.get(booking.id).status == booking_status.CANCELLED
        assert not _slot(court, 18).is_booked

    def test_confirmed_bookings_untouched(self, engine, clock, book):
        booking, session = book(hour=18)
        engine.payments.handle_success(session.session_id)
        clock.advance(minutes=31)
        assert reap_expired(engine.bookings) == 0

    def test_one_failure_does_not_stop_the_sweep(self, engine, clock, book):
        first, _ = book(hour=18)
        second, _ = book(hour=19, user_id="player-2")
        clock.advance(minutes=31)

        real = engine.bookings.expire_reap

        def flaky(booking_id, force=False):
            if booking_id == first.id:
                raise AlreadyFinalized("boom")
            return real(booking_id, force=force)

        with patch.object(engine.bookings, "expire_reap", side_effect=flaky):
            assert reap_expired(engine.bookings) == 1
        assert engine.bookings.get(second.id).status == booking_status.CANCELLED


class TestCompleteFinished:
    def test_completes_ended_bookings(self, engine, clock, book):
        booking, session = book(hour=18)
        engine.payments.handle_success(session.session_id)
        clock.advance(days=2, hours=12)

        assert complete_finished(engine.bookings) == 1
        assert engine.bookings.get(booking.id).status == booking_status.COMPLETED


class TestSweeper:
    def test_sweep_once(self, engine, clock, book):
        book(hour=18)
        clock.advance(minutes=31)
        assert sweep_once(engine.bookings) == {"reaped": 1, "completed": 0}

    def test_tick_runs_in_app_context(self, app, engine, clock, book):
        book(hour=18)
        clock.advance(minutes=31)

        sweeper = ExpirySweeper(app)
        assert sweeper.interval == 60
        assert sweeper.tick() == {"reaped": 1, "completed": 0}

    def test_start_stop(self, app):
        sweeper = ExpirySweeper(app, interval=3600)
        sweeper.start()
        assert sweeper._thread.is_alive()
        sweeper.stop()
        assert sweeper._thread is None
