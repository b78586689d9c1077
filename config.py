import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as courtslot.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "courtslot.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Pricing (rates are fractions, money is in minor units e.g. paise)
    CURRENCY = os.getenv("CURRENCY", "INR")
    BOOKING_PLATFORM_FEE_RATE = os.getenv("BOOKING_PLATFORM_FEE_RATE", "0.03")
    BOOKING_TAX_RATE = os.getenv("BOOKING_TAX_RATE", "0.18")
    DATE_CHANGE_FEE = os.getenv("DATE_CHANGE_FEE", "5000")  # ₹50

    # Cancellation / modification policy
    BOOKING_CANCEL_NOTICE_HOURS = os.getenv("BOOKING_CANCEL_NOTICE_HOURS", "2")
    BOOKING_MODIFY_NOTICE_HOURS = os.getenv("BOOKING_MODIFY_NOTICE_HOURS", "24")
    BOOKING_MODIFY_MIN_DAYS_AHEAD = os.getenv("BOOKING_MODIFY_MIN_DAYS_AHEAD", "1")
    BOOKING_MODIFY_MAX_DAYS_AHEAD = os.getenv("BOOKING_MODIFY_MAX_DAYS_AHEAD", "30")

    # Slot generation
    DEFAULT_SLOT_MINUTES = os.getenv("DEFAULT_SLOT_MINUTES", "60")

    # Payment sessions: pending bookings are reaped after the TTL
    PAYMENT_SESSION_TTL_MINUTES = os.getenv("PAYMENT_SESSION_TTL_MINUTES", "30")
    EXPIRY_SWEEP_INTERVAL_SECONDS = os.getenv("EXPIRY_SWEEP_INTERVAL_SECONDS", "60")
    EXPIRY_SWEEP_ENABLED = os.getenv("EXPIRY_SWEEP_ENABLED", "false").lower() == "true"

    # Stripe
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    PAYMENT_SUCCESS_URL = os.getenv(
        "PAYMENT_SUCCESS_URL",
        "http://localhost:3000/booking/success?session_id={CHECKOUT_SESSION_ID}",
    )
    PAYMENT_CANCEL_URL = os.getenv(
        "PAYMENT_CANCEL_URL",
        "http://localhost:3000/booking/cancel?session_id={CHECKOUT_SESSION_ID}",
    )

    # Basic app settings
    DEBUG = False


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    STRIPE_SECRET_KEY = "sk_test_dummy"
    STRIPE_WEBHOOK_SECRET = "whsec_test_dummy"
