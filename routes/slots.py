from flask import Blueprint, request, jsonify, g

from services.availability import court_availability
from services.engine import get_engine
from services.errors import ValidationError
from services.pricing import to_major, to_minor
from security.rbac import require_roles
from utils.timeparse import format_time, parse_date, parse_wall_time

slots_bp = Blueprint("slots", __name__)


def _int(data, key, required=True):
    value = data.get(key)
    if value is None or value == "":
        if required:
            raise ValidationError(f"{key} is required", field=key)
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer", field=key)


def _optional_time(data, key):
    return parse_wall_time(data[key], key) if data.get(key) else None


def _slot_json(s):
    return {
        "slot_id": s.id,
        "date": s.date.isoformat(),
        "start_time": format_time(s.start_time),
        "end_time": format_time(s.end_time),
        "price": to_major(s.price),
        "is_blocked": s.is_blocked,
        "block_reason": s.block_reason,
    }


# ---------- PLAYERS: view a court's day ----------
@slots_bp.get("/courts/<int:court_id>/availability")
def availability(court_id: int):
    slot_date = parse_date(request.args.get("date"))
    views = court_availability(court_id, slot_date)
    return jsonify(
        court_id=court_id,
        date=slot_date.isoformat(),
        slots=[v.to_dict() for v in views],
    ), 200


# ---------- OWNER/ADMIN: generate slots from operating hours ----------
@slots_bp.post("/owner/time-slots/generate")
@require_roles("OWNER", "ADMIN")
def generate_slots():
    data = request.get_json(silent=True) or {}
    court_id = _int(data, "court_id")
    slot_date = parse_date(data.get("date"))
    days = _int(data, "days", required=False)
    price = data.get("price")
    kwargs = dict(
        duration_minutes=_int(data, "duration_minutes", required=False),
        # price arrives in major units
        price=to_minor(price) if price is not None else None,
        window_start=_optional_time(data, "start_time"),
        window_end=_optional_time(data, "end_time"),
        actor=g.user_id,
    )

    slots = get_engine().slots
    if days and days > 1:
        counts = slots.generate_range(court_id, slot_date, days, **kwargs)
        return jsonify(
            message="Time slots generated successfully",
            created=counts,
            total=sum(counts.values()),
        ), 201

    created = slots.generate_day(court_id, slot_date, **kwargs)
    return jsonify(
        message="Time slots generated successfully",
        slots=[_slot_json(s) for s in created],
    ), 201


@slots_bp.post("/owner/time-slots/block")
@require_roles("OWNER", "ADMIN")
def block_slots():
    data = request.get_json(silent=True) or {}
    court_id = _int(data, "court_id")
    slot_date = parse_date(data.get("date"))
    start = parse_wall_time(data.get("start_time"), "start_time")
    end = parse_wall_time(data.get("end_time"), "end_time")
    reason = (data.get("reason") or "").strip() or None

    blocked = get_engine().slots.block_slots(court_id, slot_date, start, end, reason=reason, actor=g.user_id)
    return jsonify(
        message="Time slot blocked successfully",
        slots_affected=len(blocked),
        slots=[_slot_json(s) for s in blocked],
    ), 200


@slots_bp.post("/owner/time-slots/<int:slot_id>/unblock")
@require_roles("OWNER", "ADMIN")
def unblock_slot(slot_id: int):
    slot = get_engine().slots.unblock_slot(slot_id, actor=g.user_id)
    return jsonify(message="Time slot unblocked", slot=_slot_json(slot)), 200
