"""
Bundle: prepaid song credits. quantity_remaining only ever decreases, one unit per redemption,
via a conditional UPDATE (see BundleLedger.redeem).
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String

from serenade.db.base import Base


class Bundle(Base):
    __tablename__ = "bundles"
    __table_args__ = (CheckConstraint("quantity_remaining >= 0", name="ck_bundle_remaining_non_negative"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    order_id = Column(String, ForeignKey("orders.id"), nullable=True)
    bundle_tier = Column(String, nullable=False)
    quantity_purchased = Column(Integer, nullable=False)
    quantity_remaining = Column(Integer, nullable=False)
    purchased_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
