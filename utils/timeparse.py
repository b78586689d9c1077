"""Boundary parsing for dates and wall-clock times.

Times reach the app as "HH:MM", "HH:MM:SS", full ISO timestamps or already
parsed objects. They are normalised here, once, into ``datetime.time`` /
``datetime.date``; nothing past the routes and CLI parses strings.
"""
import re
from datetime import date, datetime, time

from services.errors import ValidationError

_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def parse_wall_time(value, field: str = "time") -> time:
    if isinstance(value, datetime):
        return value.time().replace(microsecond=0, tzinfo=None)
    if isinstance(value, time):
        return value.replace(microsecond=0, tzinfo=None)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", field=field)

    raw = value.strip()
    m = _CLOCK_RE.match(raw)
    if m:
        hour, minute, second = int(m.group(1)), int(m.group(2)), int(m.group(3) or 0)
        if hour > 23 or minute > 59 or second > 59:
            raise ValidationError(f"Invalid {field}: {raw}", field=field)
        return time(hour, minute, second)

    try:
        # Full timestamps: 2026-01-20T18:00:00, 2026-01-20 18:00:00+05:30, ...
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(f"Invalid {field}. Use HH:MM e.g. 18:00", field=field)
    return parsed.time().replace(microsecond=0, tzinfo=None)


def parse_date(value, field: str = "date") -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", field=field)
    raw = value.strip()
    try:
        if len(raw) == 10:
            return date.fromisoformat(raw)
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    except ValueError:
        raise ValidationError(f"Invalid {field}. Use YYYY-MM-DD", field=field)


def format_time(value: time) -> str:
    return value.strftime("%H:%M")
