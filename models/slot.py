from models.db import db
from utils.clock import utcnow

class TimeSlot(db.Model):
    __tablename__ = "time_slots"

    id = db.Column(db.Integer, primary_key=True)

    court_id = db.Column(db.Integer, db.ForeignKey("courts.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)

    price = db.Column(db.Integer, nullable=False, default=0)  # smallest unit, per hour

    # is_booked is the serialization point for reservations: it is only ever
    # flipped by a conditional UPDATE (see services.booking_service).
    is_booked = db.Column(db.Boolean, default=False, nullable=False)
    is_blocked = db.Column(db.Boolean, default=False, nullable=False)
    block_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        # Prevent duplicate slot times for same court
        db.UniqueConstraint("court_id", "date", "start_time", name="uq_court_date_start"),
    )

    @property
    def status(self) -> str:
        if self.is_blocked:
            return "blocked"
        if self.is_booked:
            return "booked"
        return "available"
