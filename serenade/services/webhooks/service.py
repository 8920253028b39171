"""
PaymentEventHandler: maps verified Stripe events to orders.

Only checkout.session.completed does anything. Session metadata is the only link between
a payment and domain objects. Events that cannot be acted on (bad metadata, unknown
customisation or order) are logged, recorded as FailedJob and acknowledged, so Stripe does
not redeliver them forever. The same session delivered twice creates one order:
stripe_session_id is pre-checked and is also UNIQUE in the table.
"""
import logging
from typing import Any
from uuid import uuid4

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from serenade.core.config import settings
from serenade.models.customization import Customization
from serenade.models.email_preferences import EmailPreferences
from serenade.models.failed_job import JOB_TYPE_WEBHOOK
from serenade.models.order import (
    ORDER_STATUS_PAID,
    ORDER_TYPE_BASE,
    ORDER_TYPE_BUNDLE,
    ORDER_TYPE_TWEAK,
    ORDER_TYPE_UPSELL,
    PAYMENT_METHOD_STRIPE,
    Order,
)
from serenade.models.song_variant import BASE_VARIANT_COUNT, MAX_VARIANTS_PER_ORDER
from serenade.services.bundles.pricing import BASE_PRICE, TWEAK_PRICE, UPSELL_PRICE, get_bundle_tier
from serenade.services.bundles.service import EntitlementLedger
from serenade.services.errors import DomainError, MetadataError
from serenade.services.failures.service import FailureRecoveryService
from serenade.services.generation.chain import enqueue_generation
from serenade.services.orders.service import OrderService
from serenade.services.payments.metadata import (
    BaseOrderMetadata,
    BundleOrderMetadata,
    TweakOrderMetadata,
    UpsellOrderMetadata,
    parse_checkout_metadata,
)
from serenade.services.users.service import UserService
from serenade.utils.metrics import orders_created_total, webhook_events_total

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"


class DroppedEvent(Exception):
    """The event is valid but cannot be applied; record it and acknowledge."""


class PaymentEventHandler:
    def __init__(self, db: Session):
        self.db = db
        self.orders = OrderService(db)

    def handle(self, event: dict[str, Any]) -> dict[str, Any]:
        event_type = event.get("type") or "unknown"
        event_id = event.get("id")
        if event_type != CHECKOUT_COMPLETED:
            webhook_events_total.labels(event_type=event_type, outcome="ignored").inc()
            logger.info("webhook_event_ignored", extra={"event_id": event_id, "event_type": event_type})
            return {"received": True}

        session = (event.get("data") or {}).get("object") or {}
        session_id = session.get("id")
        raw_metadata = session.get("metadata") or {}
        context = {"eventId": event_id, "sessionId": session_id, "metadata": dict(raw_metadata)}

        try:
            if not session_id:
                raise MetadataError("checkout session has no id")
            metadata = parse_checkout_metadata(raw_metadata)
            existing = self._order_for_session(session_id)
            if existing is not None:
                webhook_events_total.labels(event_type=event_type, outcome="duplicate").inc()
                logger.info("webhook_duplicate_session", extra={"session_id": session_id, "order_id": existing.id})
                return {"received": True, "orderId": existing.id, "duplicate": True}
            result = self._apply(metadata, session)
        except (MetadataError, DroppedEvent, DomainError) as e:
            self.db.rollback()
            self._drop(event_type, context, e)
            return {"received": True}
        except IntegrityError:
            # Lost the insert race to a concurrent delivery of the same session.
            self.db.rollback()
            existing = self._order_for_session(session_id)
            if existing is None:
                raise
            webhook_events_total.labels(event_type=event_type, outcome="duplicate").inc()
            logger.info("webhook_duplicate_session", extra={"session_id": session_id, "order_id": existing.id})
            return {"received": True, "orderId": existing.id, "duplicate": True}
        except SQLAlchemyError as e:
            self.db.rollback()
            self._drop(event_type, context, e, outcome="error")
            raise

        webhook_events_total.labels(event_type=event_type, outcome="processed").inc()
        return {"received": True, **result}

    # ------------------------------------------------------------------

    def _order_for_session(self, session_id: str | None) -> Order | None:
        if not session_id:
            return None
        return self.db.query(Order).filter(Order.stripe_session_id == session_id).one_or_none()

    def _drop(self, event_type: str, context: dict, error: Exception, outcome: str = "dropped") -> None:
        webhook_events_total.labels(event_type=event_type, outcome=outcome).inc()
        logger.error(
            "webhook_event_dropped",
            extra={"event_id": context.get("eventId"), "session_id": context.get("sessionId"), "error": str(error)},
        )
        try:
            FailureRecoveryService(self.db).record_failed_job(JOB_TYPE_WEBHOOK, context, error)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("failed_job_record_failed", extra={"session_id": context.get("sessionId")})

    def _apply(self, metadata, session: dict[str, Any]) -> dict[str, Any]:
        UserService(self.db).get_or_create(metadata.user_id, metadata.email or None)
        if isinstance(metadata, BundleOrderMetadata):
            return self._apply_bundle(metadata, session)
        if isinstance(metadata, TweakOrderMetadata):
            return self._apply_tweak(metadata, session)
        if isinstance(metadata, UpsellOrderMetadata):
            return self._apply_upsell(metadata, session)
        return self._apply_base(metadata, session)

    def _new_order(self, metadata, session: dict[str, Any], order_type: str, default_amount: int,
                   customization: Customization | None = None, parent: Order | None = None) -> Order:
        order = Order(
            user_id=metadata.user_id,
            customization_id=customization.id if customization else (parent.customization_id if parent else None),
            parent_order_id=parent.id if parent else None,
            stripe_session_id=session["id"],
            amount=session.get("amount_total") or default_amount,
            currency=(session.get("currency") or settings.stripe_currency).lower(),
            order_type=order_type,
            payment_method=PAYMENT_METHOD_STRIPE,
            status=ORDER_STATUS_PAID,
            occasion_date=customization.occasion_date if customization else None,
        )
        self.db.add(order)
        self.db.flush()
        return order

    def _ensure_email_preferences(self, user_id: str) -> None:
        if self.db.query(EmailPreferences.id).filter(EmailPreferences.user_id == user_id).one_or_none():
            return
        try:
            with self.db.begin_nested():
                self.db.add(
                    EmailPreferences(
                        user_id=user_id,
                        global_unsubscribe=False,
                        occasion_unsubscribes=[],
                        unsubscribe_token=str(uuid4()),
                    )
                )
                self.db.flush()
        except IntegrityError:
            logger.info("email_preferences_exists", extra={"user_id": user_id})

    def _owned_customization(self, metadata) -> Customization:
        customization = (
            self.db.query(Customization)
            .filter(Customization.id == metadata.customization_id, Customization.user_id == metadata.user_id)
            .one_or_none()
        )
        if customization is None:
            raise DroppedEvent(f"customization {metadata.customization_id} not found for user")
        return customization

    def _owned_parent(self, metadata) -> Order:
        parent = (
            self.db.query(Order)
            .filter(Order.id == metadata.original_order_id, Order.user_id == metadata.user_id)
            .one_or_none()
        )
        if parent is None:
            raise DroppedEvent(f"original order {metadata.original_order_id} not found for user")
        return parent

    def _apply_base(self, metadata: BaseOrderMetadata, session: dict[str, Any]) -> dict[str, Any]:
        customization = self._owned_customization(metadata)
        order = self._new_order(metadata, session, ORDER_TYPE_BASE, BASE_PRICE, customization=customization)
        self.orders.create_pending_variants(order, list(range(1, BASE_VARIANT_COUNT + 1)))
        self._ensure_email_preferences(metadata.user_id)
        self.db.commit()

        orders_created_total.labels(order_type=ORDER_TYPE_BASE, payment_method=PAYMENT_METHOD_STRIPE).inc()
        logger.info(
            "order_created_from_webhook",
            extra={"order_id": order.id, "user_id": metadata.user_id, "session_id": order.stripe_session_id, "order_type": ORDER_TYPE_BASE},
        )
        enqueue_generation(order.id)
        from serenade.services.email.service import EmailService

        EmailService(self.db).send_order_confirmation(order, email=metadata.email or None)
        return {"orderId": order.id}

    def _apply_bundle(self, metadata: BundleOrderMetadata, session: dict[str, Any]) -> dict[str, Any]:
        tier = get_bundle_tier(metadata.bundle_tier)
        if tier is None or tier.quantity != metadata.quantity:
            raise DroppedEvent(f"bundle tier {metadata.bundle_tier} x{metadata.quantity} does not match the price table")
        order = self._new_order(metadata, session, ORDER_TYPE_BUNDLE, tier.price)
        bundle = EntitlementLedger(self.db).create_bundle(metadata.user_id, tier, order_id=order.id)
        self._ensure_email_preferences(metadata.user_id)
        self.db.commit()

        orders_created_total.labels(order_type=ORDER_TYPE_BUNDLE, payment_method=PAYMENT_METHOD_STRIPE).inc()
        logger.info(
            "bundle_purchased",
            extra={"order_id": order.id, "user_id": metadata.user_id, "bundle_id": bundle.id, "remaining": tier.quantity},
        )
        return {"orderId": order.id, "bundleId": bundle.id}

    def _apply_upsell(self, metadata: UpsellOrderMetadata, session: dict[str, Any]) -> dict[str, Any]:
        parent = self._owned_parent(metadata)
        order = self._new_order(metadata, session, ORDER_TYPE_UPSELL, UPSELL_PRICE, parent=parent)

        if self.orders.variant_count(parent.id) >= MAX_VARIANTS_PER_ORDER:
            # Paid, but the slot is gone (another upsell or a tweak took it). Keep the payment record.
            FailureRecoveryService(self.db).record_failed_job(
                JOB_TYPE_WEBHOOK,
                {"orderId": parent.id, "sessionId": session["id"], "reason": "max_variants_reached"},
                "upsell paid after the variant cap was reached",
            )
            self.db.commit()
            logger.error("upsell_over_variant_cap", extra={"order_id": parent.id, "session_id": session["id"]})
            return {"orderId": order.id}

        self.orders.create_pending_variants(parent, [self.orders.next_variant_number(parent.id)])
        self.orders.reopen_for_generation(parent.id)
        self.db.commit()

        orders_created_total.labels(order_type=ORDER_TYPE_UPSELL, payment_method=PAYMENT_METHOD_STRIPE).inc()
        logger.info(
            "upsell_purchased",
            extra={"order_id": parent.id, "user_id": metadata.user_id, "session_id": session["id"]},
        )
        enqueue_generation(parent.id)
        return {"orderId": order.id, "parentOrderId": parent.id}

    def _apply_tweak(self, metadata: TweakOrderMetadata, session: dict[str, Any]) -> dict[str, Any]:
        parent = self._owned_parent(metadata)
        order = self._new_order(metadata, session, ORDER_TYPE_TWEAK, TWEAK_PRICE, parent=parent)
        # tweak_count records free-then-paid; later paid tweaks stay at 2
        parent.tweak_count = min((parent.tweak_count or 0) + 1, 2)
        self.db.add(parent)
        self.orders.append_tweak_variant(
            parent,
            special_memories=metadata.tweak_special_memories,
            things_to_avoid=metadata.tweak_things_to_avoid,
            pronunciation=metadata.tweak_pronunciation,
            source="paid",
        )
        self.db.commit()

        orders_created_total.labels(order_type=ORDER_TYPE_TWEAK, payment_method=PAYMENT_METHOD_STRIPE).inc()
        logger.info(
            "paid_tweak_applied",
            extra={"order_id": parent.id, "user_id": metadata.user_id, "session_id": session["id"]},
        )
        enqueue_generation(parent.id)
        return {"orderId": order.id, "parentOrderId": parent.id}
