import json
from datetime import date, datetime, time, timedelta

import pytest

from app import create_app
from config import TestConfig
from models import Coupon, Court, Facility, OperatingHours, db
from models.coupon import PERCENTAGE
from services.errors import GatewayError, ValidationError
from services.gateway import PENDING, CheckoutSession

WEBHOOK_SIGNATURE = "t=1,v1=good"

# Monday 08:00 UTC
START = datetime(2026, 3, 2, 8, 0)
# Wednesday of the same week
SLOT_DATE = date(2026, 3, 4)


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeGateway:
    """Records checkout sessions instead of talking to Stripe."""

    def __init__(self):
        self.sessions = []
        self.failures = 0
        self.state = PENDING

    def create_checkout_session(self, amount, currency, success_url, cancel_url, metadata,
                                description="", ttl_seconds=None):
        if self.failures:
            self.failures -= 1
            raise GatewayError("Payment provider unavailable")
        n = len(self.sessions) + 1
        session = CheckoutSession(session_id=f"cs_test_{n}", redirect_url=f"https://checkout.test/pay/{n}")
        self.sessions.append({
            "session": session,
            "amount": amount,
            "currency": currency,
            "metadata": metadata,
            "ttl_seconds": ttl_seconds,
        })
        return session

    def verify_session(self, session_id):
        return self.state

    def construct_event(self, payload, signature):
        if signature != WEBHOOK_SIGNATURE:
            raise ValidationError("Invalid webhook signature")
        return json.loads(payload)


# =============================================================================
# APP
# =============================================================================


@pytest.fixture
def clock():
    return FrozenClock(START)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(tmp_path, clock, gateway):
    # a file, not :memory:, so other threads see the same database
    class _Config(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'courtslot-test.db'}"

    app = create_app(_Config, gateway=gateway, clock=clock)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def engine(app):
    return app.extensions["booking_engine"]


# =============================================================================
# DATA
# =============================================================================


def make_facility(name="Arena", open_time=time(6, 0), close_time=time(22, 0), closed_days=(6,)):
    facility = Facility(name=name)
    for dow in range(7):
        facility.operating_hours.append(OperatingHours(
            day_of_week=dow,
            open_time=None if dow in closed_days else open_time,
            close_time=None if dow in closed_days else close_time,
            is_closed=dow in closed_days,
        ))
    db.session.add(facility)
    db.session.commit()
    return facility


def make_court(facility, price_per_hour=50000, name="Court 1"):
    court = Court(facility_id=facility.id, name=name, price_per_hour=price_per_hour)
    db.session.add(court)
    db.session.commit()
    return court


def make_coupon(code="SAVE20", discount_type=PERCENTAGE, discount_value=20, **kwargs):
    values = dict(
        valid_from=START - timedelta(days=1),
        valid_until=START + timedelta(days=30),
    )
    values.update(kwargs)
    coupon = Coupon(code=code, discount_type=discount_type, discount_value=discount_value, **values)
    db.session.add(coupon)
    db.session.commit()
    return coupon


@pytest.fixture
def facility(app):
    return make_facility()


@pytest.fixture
def court(facility):
    return make_court(facility)


@pytest.fixture
def day_slots(engine, court):
    """Hourly slots 06:00-22:00 on SLOT_DATE."""
    return engine.slots.generate_day(court.id, SLOT_DATE)


@pytest.fixture
def reserve(engine, court, day_slots):
    def _reserve(hour=18, user_id="player-1", coupon_code=None, slot_date=SLOT_DATE):
        return engine.bookings.reserve(court.id, slot_date, time(hour, 0), time(hour + 1, 0), user_id,
                                       coupon_code=coupon_code)
    return _reserve


@pytest.fixture
def book(engine, court, day_slots):
    """Reserve and open a checkout session; returns (booking, session)."""
    def _book(hour=18, user_id="player-1", coupon_code=None, slot_date=SLOT_DATE):
        return engine.payments.book(court.id, slot_date, time(hour, 0), time(hour + 1, 0), user_id,
                                    coupon_code=coupon_code)
    return _book
