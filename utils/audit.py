import json
import logging

from flask import has_request_context, request
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.audit_log import AuditLog

logger = logging.getLogger(__name__)


def log_event(action: str, actor=None, entity=None, entity_id=None, metadata=None,
              from_status=None, to_status=None) -> bool:
    """Append a row to the audit trail.

    Must be called after the state change it describes has been committed:
    a failure here is logged and rolled back on its own, never propagated.
    """
    ip = None
    user_agent = None
    if has_request_context():
        ip = request.headers.get("X-Forwarded-For", request.remote_addr)
        user_agent = request.headers.get("User-Agent", "")

    row = AuditLog(
        actor=str(actor) if actor is not None else None,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        from_status=from_status,
        to_status=to_status,
        ip=ip,
        user_agent=user_agent[:255] if user_agent else None,
        metadata_json=json.dumps(metadata, default=str) if metadata else None
    )
    try:
        db.session.add(row)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.warning("audit_log_write_failed", extra={"action": action, "entity_id": entity_id}, exc_info=True)
        return False
    return True


def record_transition(actor, booking, from_status, to_status, metadata=None) -> bool:
    return log_event(
        f"BOOKING_{to_status}",
        actor=actor,
        entity="booking",
        entity_id=booking.public_id,
        from_status=from_status,
        to_status=to_status,
        metadata=metadata,
    )
