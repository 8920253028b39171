from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from serenade.db.session import get_db
from serenade.schemas.checkout import TweakRequest
from serenade.services.auth.identity import AuthUser, get_current_user
from serenade.services.bundles.service import EntitlementLedger
from serenade.services.errors import NotFoundError
from serenade.services.failures.service import FailureRecoveryService
from serenade.services.generation.chain import enqueue_generation
from serenade.services.orders.queries import get_order_status
from serenade.services.orders.service import OrderService


router = APIRouter(prefix="/api", tags=["orders"])


@router.get("/orders/{order_id}/status")
def order_status(
    order_id: str,
    user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    status = get_order_status(db, order_id, user.id)
    if status is None:
        raise NotFoundError("Order not found")
    return status


@router.post("/orders/{order_id}/variants/{variant_id}/select")
def select_variant(
    order_id: str,
    variant_id: str,
    user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    return OrderService(db).select_variant(order_id, variant_id, user.id)


@router.post("/orders/{order_id}/retry-failed")
def retry_failed(
    order_id: str,
    user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    reset_count = FailureRecoveryService(db).reset_failed_variants(order_id, user.id)
    if reset_count > 0:
        enqueue_generation(order_id)
    return {"resetCount": reset_count}


@router.post("/tweak")
def apply_tweak(
    payload: TweakRequest,
    user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    """First tweak is free; afterwards the client is told to go through /api/checkout/tweak."""
    return OrderService(db).apply_free_tweak(
        payload.order_id,
        user.id,
        special_memories=payload.special_memories,
        things_to_avoid=payload.things_to_avoid,
        pronunciation=payload.pronunciation,
    )


@router.get("/balance")
def bundle_balance(user: AuthUser = Depends(get_current_user), db: Session = Depends(get_db)) -> dict:
    return {"balance": EntitlementLedger(db).get_balance(user.id)}
