"""
Order: one purchase. Base orders own the generated SongVariants; tweak/upsell/bundle
orders are payment records pointing at their parent via parent_order_id.
stripe_session_id is unique: a replayed checkout.session.completed never creates a second order.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String

from serenade.db.base import Base

ORDER_TYPE_BASE = "base"
ORDER_TYPE_TWEAK = "tweak"
ORDER_TYPE_UPSELL = "upsell"
ORDER_TYPE_BUNDLE = "bundle"
ORDER_TYPES = (ORDER_TYPE_BASE, ORDER_TYPE_TWEAK, ORDER_TYPE_UPSELL, ORDER_TYPE_BUNDLE)

ORDER_STATUS_PAID = "paid"
ORDER_STATUS_GENERATING = "generating"
ORDER_STATUS_COMPLETED = "completed"
ORDER_STATUS_FAILED = "failed"
TERMINAL_ORDER_STATUSES = (ORDER_STATUS_COMPLETED, ORDER_STATUS_FAILED)

PAYMENT_METHOD_STRIPE = "stripe"
PAYMENT_METHOD_BUNDLE_CREDIT = "bundle_credit"


class Order(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    customization_id = Column(String, ForeignKey("customizations.id"), nullable=True, index=True)
    parent_order_id = Column(String, ForeignKey("orders.id"), nullable=True, index=True)
    stripe_session_id = Column(String, unique=True, nullable=True)
    amount = Column(Integer, nullable=False, default=0)  # minor currency units (pence)
    currency = Column(String, nullable=False, default="gbp")
    order_type = Column(String, nullable=False, default=ORDER_TYPE_BASE)
    payment_method = Column(String, nullable=False, default=PAYMENT_METHOD_STRIPE)
    status = Column(String, nullable=False, default=ORDER_STATUS_PAID, index=True)
    tweak_count = Column(Integer, nullable=False, default=0)
    occasion_date = Column(Date, nullable=True)
    ready_notified_at = Column(DateTime(timezone=True), nullable=True)  # "song ready" email sent once
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
