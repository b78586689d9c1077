from .db import db
from .facility import Facility, OperatingHours
from .court import Court
from .slot import TimeSlot
from .booking import Booking
from .payment import Payment
from .coupon import Coupon, CouponRedemption
from .audit_log import AuditLog
