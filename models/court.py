from models.db import db
from utils.clock import utcnow

class Court(db.Model):
    __tablename__ = "courts"

    id = db.Column(db.Integer, primary_key=True)
    facility_id = db.Column(db.Integer, db.ForeignKey("facilities.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    sport_type = db.Column(db.String(40), nullable=False, default="FUTSAL")

    price_per_hour = db.Column(db.Integer, nullable=False, default=0)  # smallest unit (paise)
    capacity = db.Column(db.Integer, nullable=False, default=10)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    facility = db.relationship("Facility", back_populates="courts")
