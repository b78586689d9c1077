from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation every DateTime column uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
