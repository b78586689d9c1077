class BookingError(Exception):
    """Base for every error the booking engine hands back to its caller."""

    status_code = 400
    code = "BOOKING_ERROR"

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        out = {"error": self.message, "code": self.code}
        out.update(self.details)
        return out


class ValidationError(BookingError):
    status_code = 400
    code = "VALIDATION_ERROR"


class SlotUnavailable(BookingError):
    status_code = 409
    code = "SLOT_UNAVAILABLE"

    def __init__(self, message: str = "Time slot is not available", conflicts=None, **details):
        if conflicts:
            details["conflicts"] = conflicts
        super().__init__(message, **details)
        self.conflicts = conflicts or []


class PolicyViolation(BookingError):
    status_code = 403
    code = "POLICY_VIOLATION"


class AlreadyFinalized(BookingError):
    status_code = 409
    code = "ALREADY_FINALIZED"


class NotFound(BookingError):
    status_code = 404
    code = "NOT_FOUND"


class GatewayError(BookingError):
    status_code = 502
    code = "GATEWAY_ERROR"


class ExpiredSession(BookingError):
    status_code = 410
    code = "EXPIRED_SESSION"
