"""Bridges PENDING bookings to the payment gateway and reconciles its callbacks.

Gateway calls always happen after ``reserve()`` has committed; no slot row is
locked while we wait on the network.
"""
import logging

from models import db
from models import booking as booking_status
from models import payment as payment_status
from models.payment import Payment
from services.errors import AlreadyFinalized, ExpiredSession, GatewayError, NotFound
from services.gateway import FAILED, PAID
from utils.audit import log_event
from utils.timeparse import format_time

logger = logging.getLogger(__name__)

GATEWAY_ACTOR = "gateway"
SESSION_CREATE_ATTEMPTS = 2  # first try + one automatic retry


class PaymentCoordinator:
    def __init__(self, bookings, gateway, settings):
        self.bookings = bookings
        self.gateway = gateway
        self.settings = settings

    def book(self, court_id, slot_date, start_time, end_time, user_id, coupon_code=None,
             success_url=None, cancel_url=None):
        """Reserve a slot, then open a checkout session for it.

        Returns ``(booking, checkout_session)``. The session is None for a
        zero-amount booking, which is confirmed straight away.
        """
        booking = self.bookings.reserve(court_id, slot_date, start_time, end_time, user_id,
                                        coupon_code=coupon_code)
        if booking.final_amount == 0:
            booking = self.bookings.confirm(booking.id, {"transaction_id": "FREE"}, actor=GATEWAY_ACTOR)
            return booking, None
        session = self.open_session(booking, success_url, cancel_url)
        return booking, session

    def open_session(self, booking, success_url=None, cancel_url=None, kind="booking_payment"):
        payment = booking.payment
        metadata = {
            "booking_id": booking.public_id,
            "user_id": booking.user_id,
            "type": kind,
        }
        description = (
            f"Court booking #{booking.court_id} - {booking.booking_date.isoformat()} "
            f"{format_time(booking.start_time)} to {format_time(booking.end_time)}"
        )

        last_error = None
        session = None
        for attempt in range(1, SESSION_CREATE_ATTEMPTS + 1):
            try:
                session = self.gateway.create_checkout_session(
                    amount=payment.amount,
                    currency=payment.currency,
                    success_url=success_url or self.settings.success_url,
                    cancel_url=cancel_url or self.settings.cancel_url,
                    metadata=metadata,
                    description=description,
                    ttl_seconds=int(self.settings.session_ttl.total_seconds()),
                )
                break
            except GatewayError as exc:
                last_error = exc
                logger.warning("payment_session_attempt_failed",
                               extra={"booking_id": booking.public_id, "attempt": attempt})
            finally:
                payment.session_attempts = (payment.session_attempts or 0) + 1

        if session is None:
            payment.status = payment_status.FAILED
            payment.failure_reason = (last_error.message if last_error else "Payment session failed")[:255]
            db.session.commit()
            log_event("PAYMENT_SESSION_FAILED", actor=GATEWAY_ACTOR, entity="booking",
                      entity_id=booking.public_id, metadata={"error": payment.failure_reason})
            raise GatewayError(
                "Could not start payment, please retry",
                booking_id=booking.public_id,
                retryable=True,
            )

        payment.gateway_session_id = session.session_id
        payment.status = payment_status.PENDING
        payment.failure_reason = None
        payment.session_started_at = self.bookings.clock()
        db.session.commit()

        log_event("PAYMENT_SESSION_CREATED", actor=booking.user_id, entity="booking",
                  entity_id=booking.public_id, metadata={"session_id": session.session_id, "type": kind})
        return session

    def retry_payment(self, booking_id, user_id=None, success_url=None, cancel_url=None):
        """New checkout session for the same amount. The slot is already held, so it is not re-checked."""
        booking = self.bookings.get(booking_id, user_id=user_id)
        if booking.status != booking_status.PENDING:
            raise AlreadyFinalized("Booking is no longer available for payment", status=booking.status)

        payment = booking.payment
        if payment is None or payment.status not in payment_status.RETRYABLE_STATUSES:
            raise AlreadyFinalized("Payment is already completed or cancelled",
                                   payment_status=payment.status if payment else None)

        if self.bookings.is_expired(booking):
            self.bookings.expire_reap(booking.id, force=True)
            raise ExpiredSession("Booking has expired. Please create a new booking.",
                                 booking_id=booking.public_id)

        session = self.open_session(booking, success_url, cancel_url, kind="booking_payment_retry")
        return self.bookings.get(booking.id), session

    # ---------- gateway callbacks ----------

    def _payment_for_callback(self, session_id, booking_id=None) -> Payment:
        """The payment a gateway session belongs to.

        A retry replaces ``gateway_session_id``, so an older session that still
        gets paid is matched through the booking id carried in its metadata.
        """
        payment = Payment.query.filter_by(gateway_session_id=session_id).first() if session_id else None
        if payment is None and booking_id:
            payment = self.bookings.get(booking_id).payment
            if payment is not None:
                logger.info("payment_superseded_session", extra={
                    "booking_id": booking_id, "session_id": session_id,
                    "current_session_id": payment.gateway_session_id})
        if payment is None:
            raise NotFound("Payment session not found", session_id=session_id)
        return payment

    def handle_success(self, session_id, amount_paid=None, transaction_id=None, booking_id=None):
        """Confirm the booking paid through ``session_id``.

        A paid amount that differs from the payment is audited and the booking
        is left PENDING for manual review; the callback is still acknowledged.
        """
        payment = self._payment_for_callback(session_id, booking_id)
        booking = payment.booking
        if amount_paid is not None and int(amount_paid) != payment.amount:
            logger.error("payment_amount_mismatch", extra={
                "booking_id": booking.public_id, "expected": payment.amount, "paid": amount_paid})
            log_event("PAYMENT_AMOUNT_MISMATCH", actor=GATEWAY_ACTOR, entity="booking",
                      entity_id=booking.public_id,
                      metadata={"expected": payment.amount, "paid": amount_paid, "session_id": session_id})
            return booking

        try:
            return self.bookings.confirm(
                booking.id,
                {"transaction_id": transaction_id, "session_id": session_id},
                actor=GATEWAY_ACTOR,
            )
        except AlreadyFinalized:
            # Paid after the sweep reaped it; needs a manual refund.
            if booking.status == booking_status.CANCELLED:
                logger.warning("payment_after_cancel", extra={"booking_id": booking.public_id})
                log_event("PAYMENT_AFTER_CANCEL", actor=GATEWAY_ACTOR, entity="booking",
                          entity_id=booking.public_id,
                          metadata={"session_id": session_id, "transaction_id": transaction_id})
            raise

    def handle_expired(self, session_id):
        payment = Payment.query.filter_by(gateway_session_id=session_id).first()
        if payment is None:
            # superseded by a retry session, nothing to do
            return None
        return self.bookings.expire_reap(payment.booking_id, force=True)

    def handle_cancelled(self, session_id):
        payment = self._payment_for_callback(session_id)
        booking = payment.booking
        if booking.status != booking_status.PENDING:
            return booking
        try:
            return self.bookings.cancel(booking.id, actor=booking.user_id, reason="Payment cancelled by user")
        except AlreadyFinalized:
            return self.bookings.get(booking.id)

    def handle_failed(self, booking_id, reason=None):
        booking = self.bookings.get(booking_id)
        payment = booking.payment
        if booking.status != booking_status.PENDING or payment is None:
            return booking
        if payment.status == payment_status.PENDING:
            payment.status = payment_status.FAILED
            payment.failure_reason = (reason or "Payment failed")[:255]
            db.session.commit()
            log_event("PAYMENT_FAILED", actor=GATEWAY_ACTOR, entity="booking", entity_id=booking.public_id,
                      metadata={"reason": reason})
        return self.bookings.get(booking.id)

    def reconcile(self, booking_id, user_id=None):
        """Ask the gateway about the current session and apply the answer."""
        booking = self.bookings.get(booking_id, user_id=user_id)
        payment = booking.payment
        if booking.status != booking_status.PENDING or not payment or not payment.gateway_session_id:
            return booking

        state = self.gateway.verify_session(payment.gateway_session_id)
        if state == PAID:
            return self.handle_success(payment.gateway_session_id)
        if state == FAILED:
            return self.bookings.expire_reap(booking.id, force=True) or self.bookings.get(booking.id)
        return booking
