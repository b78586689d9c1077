import json
from types import SimpleNamespace
from unittest.mock import patch

import pytest
import stripe

from services.errors import GatewayError, ValidationError
from services.gateway import FAILED, PAID, PENDING, StripeGateway


@pytest.fixture
def gateway():
    return StripeGateway("sk_test_123", "whsec_123")


def _create(gateway, **kwargs):
    values = dict(
        amount=60770,
        currency="INR",
        success_url="https://app.test/ok?session_id={CHECKOUT_SESSION_ID}",
        cancel_url="https://app.test/cancel",
        metadata={"booking_id": "abc", "type": "booking_payment"},
        ttl_seconds=1800,
    )
    values.update(kwargs)
    return gateway.create_checkout_session(**values)


class TestCreateCheckoutSession:
    def test_sends_minor_units_and_metadata(self, gateway):
        with patch("stripe.checkout.Session.create",
                   return_value={"id": "cs_1", "url": "https://checkout.stripe.test/cs_1"}) as create:
            session = _create(gateway)

        assert session.session_id == "cs_1"
        assert session.redirect_url == "https://checkout.stripe.test/cs_1"

        params = create.call_args.kwargs
        assert params["line_items"][0]["price_data"]["unit_amount"] == 60770
        assert params["line_items"][0]["price_data"]["currency"] == "inr"
        assert params["metadata"] == {"booking_id": "abc", "type": "booking_payment"}
        assert params["payment_intent_data"]["metadata"]["booking_id"] == "abc"
        assert "expires_at" in params
        assert stripe.api_key == "sk_test_123"

    def test_short_ttl_raised_to_stripe_minimum(self, gateway):
        with patch("stripe.checkout.Session.create", return_value={"id": "cs_1", "url": "u"}) as create, \
                patch("services.gateway._time.time", return_value=1_000_000):
            _create(gateway, ttl_seconds=60)
        assert create.call_args.kwargs["expires_at"] == 1_000_000 + 30 * 60

    def test_stripe_error_becomes_gateway_error(self, gateway):
        with patch("stripe.checkout.Session.create", side_effect=stripe.APIConnectionError("timeout")):
            with pytest.raises(GatewayError):
                _create(gateway)

    def test_missing_secret_key(self):
        with pytest.raises(GatewayError):
            _create(StripeGateway(None))

    def test_missing_urls(self, gateway):
        with pytest.raises(GatewayError):
            _create(gateway, success_url="")


class TestVerifySession:
    @pytest.mark.parametrize("session, expected", [
        (SimpleNamespace(payment_status="paid", status="complete"), PAID),
        (SimpleNamespace(payment_status="unpaid", status="expired"), FAILED),
        (SimpleNamespace(payment_status="unpaid", status="open"), PENDING),
    ])
    def test_maps_session_state(self, gateway, session, expected):
        with patch("stripe.checkout.Session.retrieve", return_value=session):
            assert gateway.verify_session("cs_1") == expected


class TestConstructEvent:
    def test_valid_signature_returns_plain_dict(self, gateway):
        payload = json.dumps({"type": "checkout.session.completed", "data": {"object": {"id": "cs_1"}}})
        with patch("stripe.Webhook.construct_event") as construct:
            event = gateway.construct_event(payload, "sig")

        construct.assert_called_once_with(payload, "sig", "whsec_123")
        assert event["data"]["object"]["id"] == "cs_1"

    def test_bad_signature(self, gateway):
        error = stripe.SignatureVerificationError("bad", "sig")
        with patch("stripe.Webhook.construct_event", side_effect=error):
            with pytest.raises(ValidationError):
                gateway.construct_event("{}", "sig")

    def test_missing_webhook_secret(self):
        with pytest.raises(GatewayError):
            StripeGateway("sk_test_123").construct_event("{}", "sig")
