"""
CheckoutService: turns a purchase intent into either a redeemed bundle credit
(order created here, synchronously) or a hosted Stripe checkout session.

Amounts always come from the server price table. The price validators run again just
before a session is created; a mismatch there is a configuration bug, not a client error.
"""
import logging

from sqlalchemy.orm import Session

from serenade.core.config import settings
from serenade.models.customization import Customization
from serenade.models.order import (
    ORDER_STATUS_PAID,
    ORDER_TYPE_BASE,
    PAYMENT_METHOD_BUNDLE_CREDIT,
    Order,
)
from serenade.models.song_variant import BASE_VARIANT_COUNT, MAX_VARIANTS_PER_ORDER
from serenade.services.auth.identity import AuthUser
from serenade.services.bundles.pricing import (
    BASE_PRICE,
    TWEAK_PRICE,
    UPSELL_PRICE,
    get_bundle_tier,
    validate_bundle_price,
    validate_tweak_price,
    validate_upsell_price,
)
from serenade.services.bundles.service import EntitlementLedger
from serenade.services.errors import DomainError, NotFoundError, PaymentConfigurationError, PreconditionError
from serenade.services.orders.service import OrderService
from serenade.services.payments.gateway import PaymentGateway
from serenade.services.payments.metadata import (
    BaseOrderMetadata,
    BundleOrderMetadata,
    TweakOrderMetadata,
    UpsellOrderMetadata,
)
from serenade.utils.metrics import orders_created_total

logger = logging.getLogger(__name__)


class CheckoutService:
    def __init__(self, db: Session, gateway: PaymentGateway):
        self.db = db
        self.gateway = gateway
        self.ledger = EntitlementLedger(db)

    @property
    def _app_url(self) -> str:
        return settings.app_url.rstrip("/")

    def _owned_order(self, order_id: str, user_id: str) -> Order:
        order = (
            self.db.query(Order)
            .filter(Order.id == order_id, Order.user_id == user_id)
            .one_or_none()
        )
        if order is None:
            raise NotFoundError("Order not found")
        return order

    # ------------------------------------------------------------------
    # Base order
    # ------------------------------------------------------------------

    def create_checkout(self, customization_id: str, user: AuthUser) -> dict:
        customization = (
            self.db.query(Customization)
            .filter(Customization.id == customization_id, Customization.user_id == user.id)
            .one_or_none()
        )
        if customization is None:
            raise NotFoundError("Customisation not found")

        if self.ledger.get_balance(user.id) > 0:
            order = self._redeem_credit_order(customization, user)
            if order is not None:
                return {
                    "url": f"/generate/{order.id}",
                    "orderId": order.id,
                    "creditRedeemed": True,
                }

        metadata = BaseOrderMetadata(
            user_id=user.id,
            email=user.email or "",
            customization_id=customization.id,
        )
        session = self.gateway.create_checkout_session(
            amount=BASE_PRICE,
            product_name="Personalised Song",
            description="Custom AI-generated song for your special someone",
            metadata=metadata.to_stripe(),
            customer_email=user.email,
            success_url=f"{self._app_url}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{self._app_url}/customise?canceled=true",
        )
        return {"url": session.url}

    def _redeem_credit_order(self, customization: Customization, user: AuthUser) -> Order | None:
        """
        Spend one credit and create the paid order with its variants in one transaction.
        None when the credit was lost to a concurrent redemption (nothing written).
        """
        redemption = self.ledger.redeem(user.id)
        if not redemption.redeemed:
            self.db.rollback()
            logger.info("bundle_redemption_lost", extra={"user_id": user.id, "customization_id": customization.id})
            return None
        try:
            order = Order(
                user_id=user.id,
                customization_id=customization.id,
                amount=0,
                currency=settings.stripe_currency,
                order_type=ORDER_TYPE_BASE,
                payment_method=PAYMENT_METHOD_BUNDLE_CREDIT,
                status=ORDER_STATUS_PAID,
                occasion_date=customization.occasion_date,
            )
            self.db.add(order)
            self.db.flush()
            OrderService(self.db).create_pending_variants(order, list(range(1, BASE_VARIANT_COUNT + 1)))
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("credit_order_create_failed", extra={"user_id": user.id, "customization_id": customization.id})
            raise DomainError("Failed to create your order, please try again", status_code=500)

        orders_created_total.labels(order_type=ORDER_TYPE_BASE, payment_method=PAYMENT_METHOD_BUNDLE_CREDIT).inc()
        logger.info(
            "order_created_from_credit",
            extra={"order_id": order.id, "user_id": user.id, "bundle_id": redemption.bundle_id, "remaining": redemption.remaining},
        )
        return order

    # ------------------------------------------------------------------
    # Bundle / tweak / upsell
    # ------------------------------------------------------------------

    def create_bundle_checkout(self, tier_id: str, user: AuthUser) -> dict:
        tier = get_bundle_tier(tier_id)
        if tier is None:
            raise DomainError("Invalid bundle tier")
        if not validate_bundle_price(tier.id, tier.price):
            raise PaymentConfigurationError("Invalid pricing configuration")

        metadata = BundleOrderMetadata(
            user_id=user.id,
            email=user.email or "",
            bundle_tier=tier.id,
            quantity=tier.quantity,
        )
        session = self.gateway.create_checkout_session(
            amount=tier.price,
            product_name=f"Serenade {tier.name} Bundle",
            description=f"{tier.quantity} personalised songs",
            metadata=metadata.to_stripe(),
            customer_email=user.email,
            success_url=f"{self._app_url}/dashboard?bundle=success",
            cancel_url=f"{self._app_url}/pricing?canceled=true",
        )
        return {"url": session.url}

    def create_tweak_checkout(
        self,
        order_id: str,
        user: AuthUser,
        special_memories: str = "",
        things_to_avoid: str = "",
        pronunciation: str = "",
    ) -> dict:
        order = self._owned_order(order_id, user.id)
        if (order.tweak_count or 0) < 1:
            raise PreconditionError("Free tweak has not been used yet")
        if not order.customization_id:
            raise PreconditionError("Order has no song brief to tweak")
        if not validate_tweak_price(TWEAK_PRICE):
            raise PaymentConfigurationError("Invalid pricing configuration")

        metadata = TweakOrderMetadata(
            user_id=user.id,
            email=user.email or "",
            customization_id=order.customization_id,
            original_order_id=order.id,
            tweak_special_memories=special_memories or "",
            tweak_things_to_avoid=things_to_avoid or "",
            tweak_pronunciation=pronunciation or "",
        )
        session = self.gateway.create_checkout_session(
            amount=TWEAK_PRICE,
            product_name="Song Tweak",
            description="Regenerate your song with updated details",
            metadata=metadata.to_stripe(),
            customer_email=user.email,
            success_url=f"{self._app_url}/generate/{order.id}?tweak=success",
            cancel_url=f"{self._app_url}/generate/{order.id}?tweak=canceled",
        )
        return {"url": session.url}

    def create_upsell_checkout(self, order_id: str, user: AuthUser) -> dict:
        order = self._owned_order(order_id, user.id)
        orders = OrderService(self.db)
        if orders.variant_count(order.id) >= MAX_VARIANTS_PER_ORDER:
            raise PreconditionError("Order already has maximum variants")
        if not order.customization_id:
            raise PreconditionError("Order has no song brief")
        if not validate_upsell_price(UPSELL_PRICE):
            raise PaymentConfigurationError("Invalid pricing configuration")

        metadata = UpsellOrderMetadata(
            user_id=user.id,
            email=user.email or "",
            customization_id=order.customization_id,
            original_order_id=order.id,
            variant_number=orders.next_variant_number(order.id),
        )
        session = self.gateway.create_checkout_session(
            amount=UPSELL_PRICE,
            product_name="Extra Song Version",
            description="One more version of your personalised song",
            metadata=metadata.to_stripe(),
            customer_email=user.email,
            success_url=f"{self._app_url}/generate/{order.id}?upsell=success",
            cancel_url=f"{self._app_url}/generate/{order.id}?upsell=canceled",
        )
        return {"url": session.url}
