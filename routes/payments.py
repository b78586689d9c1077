from flask import Blueprint, request, jsonify, g

from models.payment import Payment
from routes.booking import booking_snapshot
from services.engine import get_engine
from services.errors import NotFound, ValidationError
from utils.auth_context import login_required

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")


def _own_payment(session_id: str) -> Payment:
    payment = Payment.query.filter_by(gateway_session_id=session_id).first() if session_id else None
    if not payment or payment.booking.user_id != g.user_id:
        raise NotFound("Payment not found")
    return payment


# Landing page after checkout: ask the gateway instead of waiting for the webhook
@payments_bp.get("/session/<session_id>")
@login_required
def session_status(session_id: str):
    payment = _own_payment(session_id)
    booking = get_engine().payments.reconcile(payment.booking_id, user_id=g.user_id)
    return jsonify(booking_snapshot(booking)), 200


@payments_bp.get("/cancel")
@login_required
def cancel_payment():
    session_id = request.args.get("session_id")
    if not session_id:
        raise ValidationError("session_id required", field="session_id")
    _own_payment(session_id)

    booking = get_engine().payments.handle_cancelled(session_id)
    return jsonify(message="Payment cancelled", booking=booking_snapshot(booking)), 200
