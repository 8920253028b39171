from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from serenade.db.base import Base

VARIANT_PENDING = "pending"
VARIANT_GENERATING = "generating"
VARIANT_COMPLETE = "complete"
VARIANT_FAILED = "failed"

BASE_VARIANT_COUNT = 3
MAX_VARIANTS_PER_ORDER = 4


def variant_storage_path(order_id: str, variant_number: int) -> str:
    return f"{order_id}/variant-{variant_number}.mp3"


class SongVariant(Base):
    __tablename__ = "song_variants"
    __table_args__ = (UniqueConstraint("order_id", "variant_number", name="uq_variant_order_number"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)  # denormalized from Order
    order_id = Column(String, ForeignKey("orders.id"), nullable=False, index=True)
    variant_number = Column(Integer, nullable=False)
    generation_status = Column(String, nullable=False, default=VARIANT_PENDING, index=True)
    storage_path = Column(String, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    selected = Column(Boolean, nullable=False, default=False)
    share_token = Column(String, unique=True, nullable=False, default=lambda: str(uuid4()))
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
