import logging

from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from serenade.db.session import get_db
from serenade.services.payments.gateway import InvalidSignatureError, PaymentGateway, get_payment_gateway
from serenade.services.webhooks.service import PaymentEventHandler
from serenade.utils.metrics import webhook_events_total

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["webhook"])


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    payload = await request.body()
    if not stripe_signature:
        return JSONResponse({"error": "Missing signature"}, status_code=400)
    try:
        event = gateway.construct_event(payload, stripe_signature)
    except InvalidSignatureError as e:
        webhook_events_total.labels(event_type="unverified", outcome="rejected").inc()
        logger.warning("webhook_signature_invalid", extra={"error": str(e)})
        return JSONResponse({"error": "Invalid signature"}, status_code=400)

    # Blocking DB work and the Celery enqueue stay off the event loop
    return await run_in_threadpool(PaymentEventHandler(db).handle, event)
