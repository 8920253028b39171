"""
OrderService: writes on the Order/SongVariant aggregate outside the generation step itself:
variant batches, order finalisation, selection and tweak amendments.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from serenade.models.customization import Customization, CustomizationTweak
from serenade.models.order import (
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_FAILED,
    ORDER_STATUS_GENERATING,
    ORDER_STATUS_PAID,
    Order,
)
from serenade.models.song_variant import (
    VARIANT_COMPLETE,
    VARIANT_FAILED,
    VARIANT_GENERATING,
    VARIANT_PENDING,
    SongVariant,
    variant_storage_path,
)
from serenade.services.errors import NotFoundError, PreconditionError

logger = logging.getLogger(__name__)


class OrderService:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Variants
    # ------------------------------------------------------------------

    def next_variant_number(self, order_id: str) -> int:
        current = (
            self.db.query(func.max(SongVariant.variant_number))
            .filter(SongVariant.order_id == order_id)
            .scalar()
        )
        return int(current or 0) + 1

    def create_pending_variants(self, order: Order, numbers: list[int]) -> list[SongVariant]:
        """
        Insert pending variants with the given numbers. Numbers that already exist are skipped;
        a unique violation on (order_id, variant_number) means a concurrent retry of the same
        action got there first and is ignored. Any other insert error propagates.
        """
        existing = {
            n for (n,) in self.db.query(SongVariant.variant_number).filter(SongVariant.order_id == order.id)
        }
        created: list[SongVariant] = []
        for number in numbers:
            if number in existing:
                continue
            variant = SongVariant(
                user_id=order.user_id,
                order_id=order.id,
                variant_number=number,
                generation_status=VARIANT_PENDING,
                storage_path=variant_storage_path(order.id, number),
            )
            try:
                with self.db.begin_nested():
                    self.db.add(variant)
                    self.db.flush()
            except IntegrityError:
                logger.info(
                    "variant_already_exists",
                    extra={"order_id": order.id, "variant_number": number},
                )
                continue
            created.append(variant)
        return created

    def count_by_status(self, order_id: str) -> dict[str, int]:
        rows = (
            self.db.query(SongVariant.generation_status, func.count(SongVariant.id))
            .filter(SongVariant.order_id == order_id)
            .group_by(SongVariant.generation_status)
            .all()
        )
        return {status: count for status, count in rows}

    def variant_count(self, order_id: str) -> int:
        """Every variant of the order, tweak re-renders included; this is what the per-order cap counts."""
        return self.db.query(func.count(SongVariant.id)).filter(SongVariant.order_id == order_id).scalar() or 0

    def reopen_for_generation(self, order_id: str) -> bool:
        """Move a settled order back to paid so the engine resumes it."""
        result = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status.in_([ORDER_STATUS_COMPLETED, ORDER_STATUS_FAILED]))
            .values(status=ORDER_STATUS_PAID, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        self.db.flush()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Finalisation
    # ------------------------------------------------------------------

    def finalize_order_if_settled(self, order_id: str) -> str | None:
        """
        Settle the order once nothing is pending or generating: completed if any variant
        completed, failed if all failed. Returns the new status, or None when not settled
        (or already settled by someone else). Commits.
        """
        counts = self.count_by_status(order_id)
        if not counts or counts.get(VARIANT_PENDING, 0) or counts.get(VARIANT_GENERATING, 0):
            return None
        target = ORDER_STATUS_COMPLETED if counts.get(VARIANT_COMPLETE, 0) > 0 else ORDER_STATUS_FAILED
        result = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status.in_([ORDER_STATUS_PAID, ORDER_STATUS_GENERATING]))
            .values(status=target, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount == 0:
            return None

        log = logger.info if target == ORDER_STATUS_COMPLETED else logger.error
        log(
            "order_finalized",
            extra={
                "order_id": order_id,
                "status": target,
                "remaining": 0,
            },
        )
        if target == ORDER_STATUS_COMPLETED:
            self._notify_ready_once(order_id)
        return target

    def _notify_ready_once(self, order_id: str) -> None:
        claimed = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.ready_notified_at.is_(None))
            .values(ready_notified_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if claimed.rowcount == 0:
            return
        order = self.db.query(Order).filter(Order.id == order_id).one()
        from serenade.services.email.service import EmailService

        EmailService(self.db).send_song_ready(order)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_variant(self, order_id: str, variant_id: str, user_id: str) -> dict:
        order = (
            self.db.query(Order)
            .filter(Order.id == order_id, Order.user_id == user_id)
            .with_for_update()
            .one_or_none()
        )
        variant = None
        if order is not None:
            variant = (
                self.db.query(SongVariant)
                .filter(
                    SongVariant.id == variant_id,
                    SongVariant.order_id == order_id,
                    SongVariant.user_id == user_id,
                )
                .one_or_none()
            )
        if order is None or variant is None:
            self.db.rollback()
            raise NotFoundError("Variant not found")
        if variant.generation_status != VARIANT_COMPLETE:
            self.db.rollback()
            raise PreconditionError("Only finished songs can be selected")

        # Unselect first: a failure between the two writes leaves nothing selected, never two.
        self.db.execute(
            update(SongVariant)
            .where(SongVariant.order_id == order_id, SongVariant.id != variant_id)
            .values(selected=False)
            .execution_options(synchronize_session=False)
        )
        self.db.execute(
            update(SongVariant)
            .where(SongVariant.id == variant_id)
            .values(selected=True, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

        customization = None
        if order.customization_id:
            customization = (
                self.db.query(Customization)
                .filter(Customization.id == order.customization_id)
                .one_or_none()
            )
        logger.info("variant_selected", extra={"order_id": order_id, "variant_id": variant_id, "user_id": user_id})
        return {
            "variantId": variant.id,
            "shareToken": variant.share_token,
            "recipientName": customization.recipient_name if customization else None,
            "yourName": customization.your_name if customization else None,
            "occasion": customization.occasion if customization else None,
        }

    # ------------------------------------------------------------------
    # Tweaks
    # ------------------------------------------------------------------

    def append_tweak_variant(
        self,
        order: Order,
        special_memories: str | None,
        things_to_avoid: str | None,
        pronunciation: str | None,
        source: str,
    ) -> SongVariant:
        """Record the amendment, add one pending variant and reopen the order. Caller commits."""
        if not order.customization_id:
            raise PreconditionError("Order has no song brief to tweak")
        tweak = CustomizationTweak(
            customization_id=order.customization_id,
            order_id=order.id,
            special_memories=special_memories or None,
            things_to_avoid=things_to_avoid or None,
            pronunciation=pronunciation or None,
            source=source,
        )
        self.db.add(tweak)
        self.db.flush()
        created = self.create_pending_variants(order, [self.next_variant_number(order.id)])
        if not created:
            raise PreconditionError("Could not add a new version, please try again")
        self.reopen_for_generation(order.id)
        return created[0]

    def apply_free_tweak(
        self,
        order_id: str,
        user_id: str,
        special_memories: str | None,
        things_to_avoid: str | None,
        pronunciation: str | None,
    ) -> dict:
        """
        First tweak is free. Returns {"requiresPayment": True} once it has been used;
        the second tweak goes through paid checkout instead.
        """
        order = (
            self.db.query(Order)
            .filter(Order.id == order_id, Order.user_id == user_id)
            .one_or_none()
        )
        if order is None:
            raise NotFoundError("Order not found")
        if order.status != ORDER_STATUS_COMPLETED:
            raise PreconditionError("Your song must finish before it can be tweaked")
        if (order.tweak_count or 0) >= 1:
            return {"requiresPayment": True}

        consumed = self.db.execute(
            update(Order)
            .where(Order.id == order_id, Order.tweak_count == 0)
            .values(tweak_count=1)
            .execution_options(synchronize_session=False)
        )
        if consumed.rowcount == 0:
            self.db.rollback()
            return {"requiresPayment": True}

        variant = self.append_tweak_variant(order, special_memories, things_to_avoid, pronunciation, source="free")
        self.db.commit()
        logger.info(
            "free_tweak_applied",
            extra={"order_id": order_id, "user_id": user_id, "variant_number": variant.variant_number},
        )

        from serenade.services.generation.chain import enqueue_generation

        enqueue_generation(order_id)
        return {"requiresPayment": False, "orderId": order_id, "variantNumber": variant.variant_number}
