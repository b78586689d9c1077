from flask import current_app

from services.booking_service import BookingService
from services.gateway import StripeGateway
from services.modification import ModificationPolicy, ModificationService
from services.payment_coordinator import PaymentCoordinator
from services.settings import EngineSettings
from services.slot_generator import SlotGenerator
from utils.clock import utcnow


class BookingEngine:
    """The engine's collaborators, built once per app from validated settings."""

    def __init__(self, settings, gateway, clock=utcnow, fee_schedule=None, cancellation_policy=None):
        self.settings = settings
        self.clock = clock
        self.gateway = gateway
        self.slots = SlotGenerator(settings, clock)
        self.bookings = BookingService(settings, clock=clock, cancellation_policy=cancellation_policy)
        self.payments = PaymentCoordinator(self.bookings, gateway, settings)
        self.modifications = ModificationService(self.bookings, ModificationPolicy(settings, fee_schedule))


def init_engine(app, gateway=None, clock=utcnow, **kwargs) -> BookingEngine:
    settings = EngineSettings.from_config(app.config)
    if gateway is None:
        gateway = StripeGateway(app.config.get("STRIPE_SECRET_KEY"), app.config.get("STRIPE_WEBHOOK_SECRET"))
    engine = BookingEngine(settings, gateway, clock=clock, **kwargs)
    app.extensions["booking_engine"] = engine
    return engine


def get_engine() -> BookingEngine:
    return current_app.extensions["booking_engine"]
