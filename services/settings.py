from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from services.errors import ValidationError


def _rate(value, name: str) -> Decimal:
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{name} must be a number", setting=name)
    if rate < 0 or rate > 1:
        raise ValidationError(f"{name} must be between 0 and 1", setting=name)
    return rate


def _positive(value, name: str, allow_zero: bool = False):
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number", setting=name)
    if number < 0 or (number == 0 and not allow_zero):
        raise ValidationError(f"{name} must be positive", setting=name)
    return number


def _whole(value, name: str, allow_zero: bool = False) -> int:
    number = _positive(value, name, allow_zero=allow_zero)
    if not number.is_integer():
        raise ValidationError(f"{name} must be a whole number", setting=name)
    return int(number)


@dataclass(frozen=True)
class EngineSettings:
    """Every tunable of the booking engine, validated once at startup.

    Defaults: 3% platform fee, 18% tax on (base + fee), cancellation allowed
    until 2h before start, modification until 24h before start into a date
    1 to 30 days ahead, 30 minute payment sessions swept every 60s, 60 minute
    slots, ₹50 fee for moving a booking to another date.
    """

    platform_fee_rate: Decimal = Decimal("0.03")
    tax_rate: Decimal = Decimal("0.18")
    cancel_notice: timedelta = timedelta(hours=2)
    modify_notice: timedelta = timedelta(hours=24)
    modify_min_days_ahead: int = 1
    modify_max_days_ahead: int = 30
    session_ttl: timedelta = timedelta(minutes=30)
    sweep_interval_seconds: int = 60
    default_slot_minutes: int = 60
    date_change_fee: int = 5000
    currency: str = "INR"
    success_url: str = ""
    cancel_url: str = ""

    @classmethod
    def from_config(cls, config) -> "EngineSettings":
        defaults = cls()
        min_days = _whole(config.get("BOOKING_MODIFY_MIN_DAYS_AHEAD", defaults.modify_min_days_ahead),
                          "BOOKING_MODIFY_MIN_DAYS_AHEAD", allow_zero=True)
        max_days = _whole(config.get("BOOKING_MODIFY_MAX_DAYS_AHEAD", defaults.modify_max_days_ahead),
                          "BOOKING_MODIFY_MAX_DAYS_AHEAD", allow_zero=True)
        if max_days < min_days:
            raise ValidationError(
                "BOOKING_MODIFY_MIN_DAYS_AHEAD must be <= BOOKING_MODIFY_MAX_DAYS_AHEAD",
                setting="BOOKING_MODIFY_MAX_DAYS_AHEAD",
            )

        return cls(
            platform_fee_rate=_rate(config.get("BOOKING_PLATFORM_FEE_RATE", defaults.platform_fee_rate),
                                    "BOOKING_PLATFORM_FEE_RATE"),
            tax_rate=_rate(config.get("BOOKING_TAX_RATE", defaults.tax_rate), "BOOKING_TAX_RATE"),
            cancel_notice=timedelta(hours=_positive(
                config.get("BOOKING_CANCEL_NOTICE_HOURS", 2), "BOOKING_CANCEL_NOTICE_HOURS", allow_zero=True)),
            modify_notice=timedelta(hours=_positive(
                config.get("BOOKING_MODIFY_NOTICE_HOURS", 24), "BOOKING_MODIFY_NOTICE_HOURS", allow_zero=True)),
            modify_min_days_ahead=min_days,
            modify_max_days_ahead=max_days,
            session_ttl=timedelta(minutes=_positive(
                config.get("PAYMENT_SESSION_TTL_MINUTES", 30), "PAYMENT_SESSION_TTL_MINUTES")),
            sweep_interval_seconds=_whole(
                config.get("EXPIRY_SWEEP_INTERVAL_SECONDS", 60), "EXPIRY_SWEEP_INTERVAL_SECONDS"),
            default_slot_minutes=_whole(
                config.get("DEFAULT_SLOT_MINUTES", 60), "DEFAULT_SLOT_MINUTES"),
            date_change_fee=_whole(config.get("DATE_CHANGE_FEE", 5000), "DATE_CHANGE_FEE", allow_zero=True),
            currency=str(config.get("CURRENCY", "INR")).upper(),
            success_url=config.get("PAYMENT_SUCCESS_URL") or "",
            cancel_url=config.get("PAYMENT_CANCEL_URL") or "",
        )
