"""Tests for PaymentGateway with the Stripe SDK mocked / real signature scheme."""
import hashlib
import hmac
import json
import time
from unittest.mock import MagicMock, patch

import pytest
import stripe

from serenade.services.errors import DomainError
from serenade.services.payments.gateway import InvalidSignatureError, PaymentGateway

SECRET = "whsec_unit_test"


def _sign(payload: str, secret: str = SECRET, timestamp: int | None = None) -> str:
    ts = timestamp or int(time.time())
    mac = hmac.new(secret.encode(), f"{ts}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={ts},v1={mac}"


@pytest.fixture
def gateway():
    return PaymentGateway(api_key="sk_test_x", webhook_secret=SECRET, currency="gbp")


class TestConstructEvent:
    def test_valid_signature_returns_event_dict(self, gateway):
        payload = json.dumps({"id": "evt_1", "type": "checkout.session.completed", "data": {"object": {}}})
        event = gateway.construct_event(payload.encode(), _sign(payload))
        assert event["id"] == "evt_1"
        assert event["type"] == "checkout.session.completed"

    def test_missing_header_rejected(self, gateway):
        with pytest.raises(InvalidSignatureError):
            gateway.construct_event(b"{}", None)

    def test_wrong_secret_rejected(self, gateway):
        payload = json.dumps({"id": "evt_1"})
        with pytest.raises(InvalidSignatureError):
            gateway.construct_event(payload, _sign(payload, secret="whsec_other"))

    def test_tampered_payload_rejected(self, gateway):
        payload = json.dumps({"id": "evt_1", "amount": 799})
        header = _sign(payload)
        with pytest.raises(InvalidSignatureError):
            gateway.construct_event(payload.replace("799", "1"), header)

    def test_old_timestamp_rejected(self, gateway):
        payload = json.dumps({"id": "evt_1"})
        with pytest.raises(InvalidSignatureError):
            gateway.construct_event(payload, _sign(payload, timestamp=int(time.time()) - 3600))

    def test_replay_window_is_configurable(self):
        strict = PaymentGateway(api_key="sk_test_x", webhook_secret=SECRET, tolerance=30)
        payload = json.dumps({"id": "evt_1"})

        assert strict.construct_event(payload, _sign(payload, timestamp=int(time.time()) - 5))["id"] == "evt_1"
        with pytest.raises(InvalidSignatureError):
            strict.construct_event(payload, _sign(payload, timestamp=int(time.time()) - 120))


class TestCreateCheckoutSession:
    @patch("serenade.services.payments.gateway.stripe.checkout.Session.create")
    def test_creates_payment_session_with_price_data(self, mock_create, gateway):
        mock_create.return_value = MagicMock(id="cs_test_1", url="https://checkout.stripe.com/c/cs_test_1")

        session = gateway.create_checkout_session(
            amount=799,
            product_name="Personalised Song",
            metadata={"orderType": "base", "userId": "u1"},
            success_url="https://app/success",
            cancel_url="https://app/cancel",
            customer_email="a@b.c",
        )

        assert session.id == "cs_test_1"
        assert session.url.endswith("cs_test_1")
        kwargs = mock_create.call_args.kwargs
        assert kwargs["mode"] == "payment"
        assert kwargs["metadata"] == {"orderType": "base", "userId": "u1"}
        price_data = kwargs["line_items"][0]["price_data"]
        assert price_data["unit_amount"] == 799
        assert price_data["currency"] == "gbp"
        assert price_data["product_data"]["name"] == "Personalised Song"

    @patch("serenade.services.payments.gateway.stripe.checkout.Session.create")
    def test_stripe_error_becomes_bad_gateway(self, mock_create, gateway):
        mock_create.side_effect = stripe.APIConnectionError("network down")
        with pytest.raises(DomainError) as exc_info:
            gateway.create_checkout_session(
                amount=99,
                product_name="Song Tweak",
                metadata={},
                success_url="https://app/s",
                cancel_url="https://app/c",
            )
        assert exc_info.value.status_code == 502
