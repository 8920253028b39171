"""
EntitlementLedger: prepaid bundle credits.

Redemption is a conditional UPDATE on one bundle row (quantity_remaining > 0 in the WHERE);
rowcount decides the outcome, so two concurrent checkouts can never both spend the last credit.
Writes are flushed, not committed: the caller owns the transaction.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from serenade.models.bundle import Bundle
from serenade.services.bundles.pricing import BundleTier
from serenade.utils.metrics import bundle_redemptions_total

logger = logging.getLogger(__name__)


@dataclass
class RedemptionResult:
    redeemed: bool
    bundle_id: str | None = None
    remaining: int = 0


class EntitlementLedger:
    def __init__(self, db: Session):
        self.db = db

    def get_balance(self, user_id: str) -> int:
        total = (
            self.db.query(func.coalesce(func.sum(Bundle.quantity_remaining), 0))
            .filter(Bundle.user_id == user_id)
            .scalar()
        )
        return max(int(total or 0), 0)

    def redeem(self, user_id: str) -> RedemptionResult:
        """
        Spend one credit from the oldest bundle that still has one.
        A candidate that another caller drained between the read and the UPDATE just
        matches zero rows and the next candidate is tried. Nothing is written on failure.
        """
        candidate_ids = [
            row.id
            for row in (
                self.db.query(Bundle.id)
                .filter(Bundle.user_id == user_id, Bundle.quantity_remaining > 0)
                .order_by(Bundle.purchased_at.asc())
                .all()
            )
        ]
        for bundle_id in candidate_ids:
            result = self.db.execute(
                update(Bundle)
                .where(Bundle.id == bundle_id, Bundle.quantity_remaining > 0)
                .values(quantity_remaining=Bundle.quantity_remaining - 1)
                .execution_options(synchronize_session=False)
            )
            self.db.flush()
            if result.rowcount > 0:
                remaining = self.get_balance(user_id)
                bundle_redemptions_total.labels(outcome="redeemed").inc()
                logger.info(
                    "bundle_credit_redeemed",
                    extra={"user_id": user_id, "bundle_id": bundle_id, "remaining": remaining},
                )
                return RedemptionResult(redeemed=True, bundle_id=bundle_id, remaining=remaining)

        bundle_redemptions_total.labels(outcome="none_available").inc()
        return RedemptionResult(redeemed=False)

    def create_bundle(self, user_id: str, tier: BundleTier, order_id: str | None = None) -> Bundle:
        bundle = Bundle(
            user_id=user_id,
            order_id=order_id,
            bundle_tier=tier.id,
            quantity_purchased=tier.quantity,
            quantity_remaining=tier.quantity,
            purchased_at=datetime.now(timezone.utc),
        )
        self.db.add(bundle)
        self.db.flush()
        logger.info(
            "bundle_created",
            extra={"user_id": user_id, "bundle_id": bundle.id, "order_id": order_id},
        )
        return bundle
