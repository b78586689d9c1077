import logging

from flask import Blueprint, request, jsonify

from services.engine import get_engine
from services.errors import AlreadyFinalized, NotFound

logger = logging.getLogger(__name__)

webhook_bp = Blueprint("webhook", __name__, url_prefix="/webhooks")

BOOKING_SESSION_TYPES = ("booking_payment", "booking_payment_retry")


@webhook_bp.post("/stripe")
def stripe_webhook():
    payments = get_engine().payments
    # ValidationError (400) on a bad signature, via the app error handler
    event = payments.gateway.construct_event(request.data, request.headers.get("Stripe-Signature"))

    event_type = event["type"]
    obj = event["data"]["object"]
    meta = obj.get("metadata", {}) or {}

    try:
        if event_type in ("checkout.session.completed", "checkout.session.expired"):
            if meta.get("type") not in BOOKING_SESSION_TYPES:
                return jsonify(received=True, ignored=True), 200

            if event_type == "checkout.session.completed":
                if obj.get("payment_status") == "paid":
                    payments.handle_success(
                        obj.get("id"),
                        amount_paid=obj.get("amount_total"),
                        transaction_id=obj.get("payment_intent"),
                        booking_id=meta.get("booking_id"),
                    )
            else:
                payments.handle_expired(obj.get("id"))

        elif event_type == "payment_intent.payment_failed":
            booking_id = meta.get("booking_id")
            if booking_id:
                error = obj.get("last_payment_error") or {}
                payments.handle_failed(booking_id, reason=error.get("message"))

        else:
            logger.info("stripe_webhook_unhandled", extra={"event_type": event_type})

    except (AlreadyFinalized, NotFound) as exc:
        # stale or duplicate delivery; acknowledge so Stripe stops retrying
        logger.info("stripe_webhook_noop", extra={"event_type": event_type, "reason": exc.message})

    return jsonify(received=True), 200
