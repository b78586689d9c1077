from flask import Blueprint, request, jsonify, g

from models.booking import Booking
from services.engine import get_engine
from services.errors import ValidationError
from services.pricing import to_major
from utils.auth_context import login_required
from utils.timeparse import format_time, parse_date, parse_wall_time

booking_bp = Blueprint("booking", __name__, url_prefix="/bookings")


def booking_snapshot(b: Booking) -> dict:
    """Read-only Booking + Payment view, amounts in major units."""
    p = b.payment
    return {
        "id": b.public_id,
        "status": b.status,
        "user_id": b.user_id,
        "facility_id": b.facility_id,
        "court_id": b.court_id,
        "slot_id": b.time_slot_id,
        "booking_date": b.booking_date.isoformat(),
        "start_time": format_time(b.start_time),
        "end_time": format_time(b.end_time),
        "total_hours": round(b.total_minutes / 60, 4),
        "price_per_hour": to_major(b.price_per_hour),
        "base_amount": to_major(b.base_amount),
        "platform_fee": to_major(b.platform_fee),
        "tax": to_major(b.tax),
        "discount_amount": to_major(b.discount_amount),
        "final_amount": to_major(b.final_amount),
        "modification_fee": to_major(b.modification_fee or 0),
        "refund_amount": to_major(b.refund_amount) if b.refund_amount is not None else None,
        "coupon_code": b.applied_coupon_code,
        "created_at": b.created_at.isoformat(),
        "updated_at": b.updated_at.isoformat(),
        "cancelled_at": b.cancelled_at.isoformat() if b.cancelled_at else None,
        "cancel_reason": b.cancel_reason,
        "payment": {
            "status": p.status,
            "amount": to_major(p.amount),
            "currency": p.currency,
            "session_id": p.gateway_session_id,
            "transaction_id": p.transaction_id,
            "paid_at": p.paid_at.isoformat() if p.paid_at else None,
            "failure_reason": p.failure_reason,
        } if p else None,
    }


def _court_id(data) -> int:
    try:
        return int(data.get("court_id"))
    except (TypeError, ValueError):
        raise ValidationError("court_id is required", field="court_id")


# ---------- PLAYERS: reserve + start payment (DOUBLE-BOOKING SAFE) ----------
@booking_bp.post("")
@login_required
def create_booking():
    data = request.get_json(silent=True) or {}
    court_id = _court_id(data)
    slot_date = parse_date(data.get("date"))
    start_time = parse_wall_time(data.get("start_time"), "start_time")
    end_time = parse_wall_time(data.get("end_time"), "end_time")

    booking, session = get_engine().payments.book(
        court_id,
        slot_date,
        start_time,
        end_time,
        g.user_id,
        coupon_code=data.get("coupon_code"),
        success_url=data.get("success_url"),
        cancel_url=data.get("cancel_url"),
    )
    return jsonify(
        booking=booking_snapshot(booking),
        checkout_url=session.redirect_url if session else None,
        session_id=session.session_id if session else None,
    ), 201


# ---------- PLAYERS: view my bookings ----------
@booking_bp.get("/me")
@login_required
def my_bookings():
    # optional: status filter
    status = (request.args.get("status") or "").strip().upper()
    q = Booking.query.filter_by(user_id=g.user_id)
    if status:
        q = q.filter_by(status=status)

    rows = q.order_by(Booking.created_at.desc()).limit(200).all()
    return jsonify([booking_snapshot(b) for b in rows]), 200


@booking_bp.get("/<public_id>")
@login_required
def get_booking(public_id: str):
    booking = get_engine().bookings.get(public_id, user_id=g.user_id)
    return jsonify(booking_snapshot(booking)), 200


# ---------- PLAYERS: cancel booking (policy window) ----------
@booking_bp.post("/<public_id>/cancel")
@login_required
def cancel_booking(public_id: str):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip() or None

    booking = get_engine().bookings.cancel(public_id, actor=g.user_id, reason=reason, user_id=g.user_id)
    return jsonify(message="Cancelled", booking=booking_snapshot(booking)), 200


@booking_bp.get("/<public_id>/modification-fee")
@login_required
def modification_fee(public_id: str):
    new_date = parse_date(request.args.get("new_date"), "new_date")
    new_time = parse_wall_time(request.args.get("new_time"), "new_time")

    result = get_engine().modifications.modification_quote(public_id, new_date, new_time, user_id=g.user_id)
    return jsonify(result), 200


@booking_bp.post("/<public_id>/modify")
@login_required
def modify_booking(public_id: str):
    data = request.get_json(silent=True) or {}
    new_date = parse_date(data.get("new_date"), "new_date")
    new_time = parse_wall_time(data.get("new_time"), "new_time")

    booking = get_engine().modifications.modify(public_id, new_date, new_time, user_id=g.user_id)
    return jsonify(message="Booking modified successfully", booking=booking_snapshot(booking)), 200


@booking_bp.post("/<public_id>/retry-payment")
@login_required
def retry_payment(public_id: str):
    data = request.get_json(silent=True) or {}
    booking, session = get_engine().payments.retry_payment(
        public_id,
        user_id=g.user_id,
        success_url=data.get("success_url"),
        cancel_url=data.get("cancel_url"),
    )
    return jsonify(
        booking=booking_snapshot(booking),
        checkout_url=session.redirect_url,
        session_id=session.session_id,
    ), 200
