import json
import logging
import time as _time
from dataclasses import dataclass
from typing import Protocol

import stripe

from services.errors import GatewayError, ValidationError

logger = logging.getLogger(__name__)

PAID = "paid"
FAILED = "failed"
PENDING = "pending"


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    redirect_url: str


class PaymentGateway(Protocol):
    def create_checkout_session(self, amount: int, currency: str, success_url: str, cancel_url: str,
                                metadata: dict, description: str = "", ttl_seconds: int = None) -> CheckoutSession:
        ...

    def verify_session(self, session_id: str) -> str:
        ...

    def construct_event(self, payload: bytes, signature: str):
        ...


class StripeGateway:
    """Stripe Checkout. Amounts go over the wire in the smallest currency unit."""

    def __init__(self, secret_key: str, webhook_secret: str = None):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret

    def _configure(self):
        if not self.secret_key:
            raise GatewayError("Stripe secret key missing (STRIPE_SECRET_KEY)")
        stripe.api_key = self.secret_key

    def create_checkout_session(self, amount, currency, success_url, cancel_url, metadata,
                                description="", ttl_seconds=None):
        self._configure()
        if not success_url or not cancel_url:
            raise GatewayError("Payment success/cancel URLs not configured")

        metadata = {k: str(v) for k, v in (metadata or {}).items()}
        params = dict(
            mode="payment",
            payment_method_types=["card"],
            line_items=[{
                "price_data": {
                    "currency": currency.lower(),
                    "product_data": {"name": description or "Court booking"},
                    "unit_amount": int(amount),
                },
                "quantity": 1,
            }],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            # so payment_intent.payment_failed events can be traced to the booking
            payment_intent_data={"metadata": metadata},
        )
        if ttl_seconds:
            # Stripe accepts 30 minutes to 24 hours
            params["expires_at"] = int(_time.time()) + max(int(ttl_seconds), 30 * 60)

        try:
            session = stripe.checkout.Session.create(**params)
        except stripe.StripeError as exc:
            logger.warning("stripe_session_create_failed", extra={"error": str(exc)})
            raise GatewayError("Payment provider unavailable", provider_error=str(exc))
        return CheckoutSession(session_id=session["id"], redirect_url=session["url"])

    def verify_session(self, session_id):
        self._configure()
        try:
            session = stripe.checkout.Session.retrieve(session_id)
        except stripe.StripeError as exc:
            raise GatewayError("Payment provider unavailable", provider_error=str(exc))
        if getattr(session, "payment_status", None) == "paid":
            return PAID
        if getattr(session, "status", None) == "expired":
            return FAILED
        return PENDING

    def construct_event(self, payload, signature):
        if not self.webhook_secret:
            raise GatewayError("Webhook secret not configured")
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError):
            raise ValidationError("Invalid webhook signature")
        return json.loads(payload)
