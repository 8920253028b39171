"""
Read models for the Order aggregate. Ownership is part of every query's WHERE clause,
so a foreign id and a missing id produce the same None.
"""
from dataclasses import dataclass

from sqlalchemy.orm import Session

from serenade.models.customization import Customization
from serenade.models.order import Order
from serenade.models.song_variant import VARIANT_COMPLETE, SongVariant


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def get_order_status(db: Session, order_id: str, user_id: str) -> dict | None:
    """Order + variants for client polling, or None if not found / not owned."""
    order = (
        db.query(Order)
        .filter(Order.id == order_id, Order.user_id == user_id)
        .one_or_none()
    )
    if order is None:
        return None
    variants = (
        db.query(SongVariant)
        .filter(SongVariant.order_id == order.id, SongVariant.user_id == user_id)
        .order_by(SongVariant.variant_number.asc())
        .all()
    )
    return {
        "orderId": order.id,
        "orderStatus": order.status,
        "tweakCount": order.tweak_count or 0,
        "variants": [
            {
                "id": v.id,
                "variantNumber": v.variant_number,
                "generationStatus": v.generation_status,
                "storagePath": v.storage_path,
                "completedAt": _iso(v.completed_at),
                "selected": bool(v.selected),
            }
            for v in variants
        ],
    }


def get_owned_variant(db: Session, variant_id: str, user_id: str) -> SongVariant | None:
    return (
        db.query(SongVariant)
        .filter(SongVariant.id == variant_id, SongVariant.user_id == user_id)
        .one_or_none()
    )


@dataclass
class SharedSong:
    variant_id: str
    storage_path: str
    duration_ms: int | None
    recipient_name: str | None
    your_name: str | None
    occasion: str | None
    genre: str | None


def get_shared_variant(db: Session, share_token: str, user_id: str | None = None) -> SharedSong | None:
    """
    Variant behind a public share token. Only a selected, complete variant is reachable;
    every other case (unknown token, unselected, unfinished) is None.
    With user_id, the variant must also belong to that user.
    """
    if not share_token:
        return None
    query = (
        db.query(SongVariant, Customization)
        .join(Order, Order.id == SongVariant.order_id)
        .outerjoin(Customization, Customization.id == Order.customization_id)
        .filter(
            SongVariant.share_token == share_token,
            SongVariant.selected.is_(True),
            SongVariant.generation_status == VARIANT_COMPLETE,
            SongVariant.storage_path.isnot(None),
        )
    )
    if user_id is not None:
        query = query.filter(SongVariant.user_id == user_id)
    row = query.one_or_none()
    if row is None:
        return None
    variant, customization = row
    return SharedSong(
        variant_id=variant.id,
        storage_path=variant.storage_path,
        duration_ms=variant.duration_ms,
        recipient_name=customization.recipient_name if customization else None,
        your_name=customization.your_name if customization else None,
        occasion=customization.occasion if customization else None,
        genre=customization.genre if customization else None,
    )
