from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from serenade.db.session import get_db
from serenade.schemas.checkout import (
    BundleCheckoutRequest,
    CheckoutRequest,
    TweakCheckoutRequest,
    UpsellCheckoutRequest,
)
from serenade.services.auth.identity import AuthUser, get_current_user
from serenade.services.checkout.service import CheckoutService
from serenade.services.payments.gateway import PaymentGateway, get_payment_gateway


router = APIRouter(prefix="/api/checkout", tags=["checkout"])


@router.post("")
def create_checkout(
    payload: CheckoutRequest,
    user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> dict:
    return CheckoutService(db, gateway).create_checkout(payload.customization_id, user)


@router.post("/bundle")
def create_bundle_checkout(
    payload: BundleCheckoutRequest,
    user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> dict:
    return CheckoutService(db, gateway).create_bundle_checkout(payload.tier_id, user)


@router.post("/tweak")
def create_tweak_checkout(
    payload: TweakCheckoutRequest,
    user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> dict:
    return CheckoutService(db, gateway).create_tweak_checkout(
        payload.order_id,
        user,
        special_memories=payload.special_memories,
        things_to_avoid=payload.things_to_avoid,
        pronunciation=payload.pronunciation,
    )


@router.post("/upsell")
def create_upsell_checkout(
    payload: UpsellCheckoutRequest,
    user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> dict:
    return CheckoutService(db, gateway).create_upsell_checkout(payload.order_id, user)
