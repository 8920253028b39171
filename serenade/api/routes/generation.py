"""
Generation triggers. Each call renders at most one variant, then hands the rest of the order
to the next chain link so no single request holds a connection for the whole order.
"""
import hmac
import logging

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from serenade.core.config import settings
from serenade.db.session import get_db
from serenade.models.order import Order
from serenade.schemas.generation import GenerateRequest, GenerateResponse
from serenade.services.auth.identity import AuthUser, get_current_user
from serenade.services.errors import DomainError, NotFoundError
from serenade.services.generation.chain import enqueue_generation
from serenade.services.generation.engine import STATUS_GENERATED, VariantGenerationEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/generate", tags=["generation"])


def require_generation_secret(
    x_generation_secret: str | None = Header(default=None, alias="X-Generation-Secret"),
) -> None:
    if not x_generation_secret or not hmac.compare_digest(x_generation_secret, settings.generation_secret):
        logger.warning("generation_secret_rejected")
        raise DomainError("Unauthorized", status_code=401)


def _run_step(db: Session, order_id: str) -> GenerateResponse:
    result = VariantGenerationEngine(db).generate_next_variant(order_id)
    chained = False
    if result.status == STATUS_GENERATED and result.remaining > 0:
        chained = enqueue_generation(order_id)
    return GenerateResponse(
        status=result.status,
        remaining=result.remaining,
        variant_id=result.variant_id,
        variant_number=result.variant_number,
        chained=chained,
    )


@router.post("/start", response_model=GenerateResponse, dependencies=[Depends(require_generation_secret)])
def start_generation(payload: GenerateRequest, db: Session = Depends(get_db)) -> GenerateResponse:
    """Internal chain trigger authenticated by the shared generation secret."""
    if not payload.order_id:
        raise DomainError("orderId is required")
    return _run_step(db, payload.order_id)


@router.post("", response_model=GenerateResponse)
def generate(
    payload: GenerateRequest,
    user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> GenerateResponse:
    """User-triggered step, used by the generation page to resume a stalled order."""
    if not payload.order_id:
        raise DomainError("orderId is required")
    owned = (
        db.query(Order.id)
        .filter(Order.id == payload.order_id, Order.user_id == user.id)
        .one_or_none()
    )
    if owned is None:
        raise NotFoundError("Order not found")
    return _run_step(db, payload.order_id)
