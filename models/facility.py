from models.db import db
from utils.clock import utcnow

class Facility(db.Model):
    __tablename__ = "facilities"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    operating_hours = db.relationship(
        "OperatingHours", back_populates="facility", cascade="all, delete-orphan"
    )
    courts = db.relationship("Court", back_populates="facility")


class OperatingHours(db.Model):
    __tablename__ = "operating_hours"

    id = db.Column(db.Integer, primary_key=True)
    facility_id = db.Column(db.Integer, db.ForeignKey("facilities.id"), nullable=False, index=True)

    day_of_week = db.Column(db.Integer, nullable=False)  # 0 = Monday ... 6 = Sunday
    open_time = db.Column(db.Time, nullable=True)
    close_time = db.Column(db.Time, nullable=True)
    is_closed = db.Column(db.Boolean, default=False, nullable=False)

    facility = db.relationship("Facility", back_populates="operating_hours")

    __table_args__ = (
        db.UniqueConstraint("facility_id", "day_of_week", name="uq_facility_day_hours"),
    )
