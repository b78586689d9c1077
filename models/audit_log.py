from models.db import db
from utils.clock import utcnow

class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    actor = db.Column(db.String(64), nullable=True)  # user id, "system" or "gateway"
    action = db.Column(db.String(80), nullable=False)  # e.g. BOOKING_CONFIRMED, SLOTS_GENERATED
    entity = db.Column(db.String(80), nullable=True)   # e.g. booking, time_slot
    entity_id = db.Column(db.String(80), nullable=True)

    from_status = db.Column(db.String(20), nullable=True)
    to_status = db.Column(db.String(20), nullable=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)

    timestamp = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)
