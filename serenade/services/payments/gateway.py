"""
Stripe adapter: hosted checkout sessions and webhook signature verification.
Everything Stripe-specific stays in this module; services receive a PaymentGateway.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any

import stripe

from serenade.core.config import settings
from serenade.services.errors import DomainError

logger = logging.getLogger(__name__)


class InvalidSignatureError(Exception):
    """Webhook payload could not be verified; nothing in it may be trusted."""


@dataclass
class CheckoutSession:
    id: str
    url: str


class PaymentGateway:
    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        currency: str = "gbp",
        tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE,
    ) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.currency = currency
        # Signed events older than this many seconds are rejected as replays
        self.tolerance = tolerance

    def create_checkout_session(
        self,
        *,
        amount: int,
        product_name: str,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
        description: str | None = None,
    ) -> CheckoutSession:
        product_data: dict[str, Any] = {"name": product_name}
        if description:
            product_data["description"] = description
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                mode="payment",
                payment_method_types=["card"],
                line_items=[
                    {
                        "price_data": {
                            "currency": self.currency,
                            "unit_amount": amount,
                            "product_data": product_data,
                        },
                        "quantity": 1,
                    }
                ],
                customer_email=customer_email or None,
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata,
            )
        except stripe.StripeError as e:
            logger.error(
                "checkout_session_create_failed",
                extra={"error": type(e).__name__, "order_type": metadata.get("orderType")},
            )
            raise DomainError("Payment provider is unavailable, please try again", status_code=502) from e

        if not session.url:
            raise DomainError("Payment provider did not return a checkout URL", status_code=502)
        logger.info(
            "checkout_session_created",
            extra={"session_id": session.id, "order_type": metadata.get("orderType")},
        )
        return CheckoutSession(id=session.id, url=session.url)

    def construct_event(self, payload: bytes | str, sig_header: str | None) -> dict[str, Any]:
        """Verify the Stripe-Signature header and return the event as a plain dict."""
        if not sig_header:
            raise InvalidSignatureError("missing signature")
        body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        try:
            stripe.WebhookSignature.verify_header(body, sig_header, self.webhook_secret, tolerance=self.tolerance)
        except stripe.SignatureVerificationError as e:
            raise InvalidSignatureError(str(e)) from e
        try:
            event = json.loads(body)
        except ValueError as e:
            raise InvalidSignatureError("payload is not valid JSON") from e
        if not isinstance(event, dict):
            raise InvalidSignatureError("payload is not an event object")
        return event


_gateway: PaymentGateway | None = None


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency; tests override it."""
    global _gateway
    if _gateway is None:
        _gateway = PaymentGateway(
            api_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            currency=settings.stripe_currency,
            tolerance=settings.stripe_webhook_tolerance_seconds,
        )
    return _gateway
