"""
EmailService: renders transactional emails and hands them to the Celery email task.
Sending is fire-and-forget: enqueue failures are logged and never raised to the order workflow.
Only the user-initiated gift email reports them back (503).
EmailClient is the HTTP side used by the task (Resend-compatible API).
"""
import logging
from datetime import datetime

import httpx
from sqlalchemy.orm import Session

from serenade.core.config import settings
from serenade.models.customization import Customization
from serenade.models.order import Order
from serenade.models.user import User
from serenade.schemas.email import GiftEmailRequest
from serenade.services.email import templates
from serenade.services.errors import DomainError, NotFoundError
from serenade.services.orders.queries import get_shared_variant
from serenade.utils.metrics import emails_sent_total

logger = logging.getLogger(__name__)


class EmailClient:
    def __init__(self, api_key: str | None = None, api_url: str | None = None, sender: str | None = None) -> None:
        self.api_key = api_key if api_key is not None else settings.email_api_key
        self.api_url = (api_url or settings.email_api_url).rstrip("/")
        self.sender = sender or settings.email_from

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def send(self, to: str, subject: str, html: str, scheduled_at: str | None = None) -> str | None:
        """POST one email; returns the provider id. Raises httpx.HTTPError on failure."""
        payload = {"from": self.sender, "to": [to], "subject": subject, "html": html}
        if scheduled_at:
            payload["scheduled_at"] = scheduled_at
        with httpx.Client(timeout=settings.email_timeout) as client:
            resp = client.post(
                f"{self.api_url}/emails",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            resp.raise_for_status()
            data = resp.json() if resp.content else {}
        return data.get("id") if isinstance(data, dict) else None


class EmailService:
    def __init__(self, db: Session):
        self.db = db

    def _enqueue(self, template: str, to: str | None, rendered: templates.RenderedEmail,
                 scheduled_at: datetime | None = None) -> bool:
        if not to:
            logger.info("email_skipped_no_address", extra={"status": template})
            return False
        try:
            from serenade.workers.tasks.send_email import send_email

            send_email.delay(
                to,
                rendered.subject,
                rendered.html,
                scheduled_at.isoformat() if scheduled_at else None,
                template,
            )
            return True
        except Exception as e:
            emails_sent_total.labels(template=template, status="enqueue_failed").inc()
            logger.error("email_enqueue_failed", extra={"status": template, "error": str(e)})
            return False

    def _context(self, order: Order) -> tuple[str | None, Customization | None]:
        user = self.db.query(User).filter(User.id == order.user_id).one_or_none()
        customization = None
        if order.customization_id:
            customization = (
                self.db.query(Customization)
                .filter(Customization.id == order.customization_id)
                .one_or_none()
            )
        return (user.email if user else None), customization

    def send_order_confirmation(self, order: Order, email: str | None = None) -> bool:
        to, customization = self._context(order)
        if customization is None:
            return False
        rendered = templates.order_confirmation(
            recipient_name=customization.recipient_name,
            occasion=customization.occasion,
            genre=customization.genre,
            order_id=order.id,
            generate_url=f"{settings.app_url.rstrip('/')}/generate/{order.id}",
        )
        return self._enqueue("order_confirmation", email or to, rendered)

    def send_song_ready(self, order: Order) -> bool:
        to, customization = self._context(order)
        if customization is None:
            return False
        rendered = templates.song_ready(
            recipient_name=customization.recipient_name,
            occasion=customization.occasion,
            song_url=f"{settings.app_url.rstrip('/')}/generate/{order.id}",
        )
        return self._enqueue("song_ready", to, rendered)

    def send_anniversary_reminder(self, order: Order, unsubscribe_token: str) -> bool:
        to, customization = self._context(order)
        if customization is None:
            return False
        base = settings.app_url.rstrip("/")
        rendered = templates.anniversary_reminder(
            recipient_name=customization.recipient_name,
            occasion=customization.occasion,
            create_song_url=f"{base}/customise",
            unsubscribe_url=f"{base}/api/unsubscribe/{unsubscribe_token}?order_id={order.id}",
            unsubscribe_all_url=f"{base}/api/unsubscribe/{unsubscribe_token}?all=true",
        )
        return self._enqueue("anniversary_reminder", to, rendered)

    def send_gift(self, user_id: str, request: GiftEmailRequest) -> bool:
        """
        Gift email for a song the caller has already shared. The link is always built from
        the caller's own share token, never taken from the request. Returns whether it was scheduled.
        """
        song = get_shared_variant(self.db, request.share_token, user_id=user_id)
        if song is None:
            raise NotFoundError("Song not found")
        rendered = templates.gift(
            recipient_name=request.recipient_name,
            sender_name=request.sender_name,
            occasion=song.occasion,
            share_url=f"{settings.app_url.rstrip('/')}/share/{request.share_token}",
            personal_message=request.personal_message,
        )
        if not self._enqueue("gift", request.recipient_email, rendered, scheduled_at=request.scheduled_at):
            raise DomainError("Failed to send email", status_code=503)
        logger.info("gift_email_enqueued", extra={"user_id": user_id, "variant_id": song.variant_id})
        return request.scheduled_at is not None
