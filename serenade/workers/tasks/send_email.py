import logging

import httpx

from serenade.core.celery_app import celery_app
from serenade.services.email.service import EmailClient
from serenade.utils.metrics import emails_sent_total

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True,
    name="serenade.workers.tasks.send_email.send_email",
    max_retries=3,
    default_retry_delay=60,
    time_limit=60,
)
def send_email(
    self,
    to: str,
    subject: str,
    html: str,
    scheduled_at: str | None = None,
    template: str = "generic",
) -> dict:
    client = EmailClient()
    if not client.is_configured():
        emails_sent_total.labels(template=template, status="skipped").inc()
        logger.info("email_skipped_not_configured", extra={"to": to, "status": template})
        return {"ok": False, "skipped": "not_configured"}
    try:
        message_id = client.send(to, subject, html, scheduled_at=scheduled_at)
    except httpx.HTTPStatusError as e:
        status_code = e.response.status_code
        emails_sent_total.labels(template=template, status="error").inc()
        logger.error("email_send_failed", extra={"to": to, "status": template, "status_code": status_code})
        if status_code == 429 or status_code >= 500:
            raise self.retry(exc=e)
        return {"ok": False, "status_code": status_code}
    except httpx.HTTPError as e:
        emails_sent_total.labels(template=template, status="error").inc()
        logger.error("email_send_failed", extra={"to": to, "status": template, "error": str(e)})
        raise self.retry(exc=e)

    emails_sent_total.labels(template=template, status="sent").inc()
    logger.info("email_sent", extra={"to": to, "status": template, "job_id": message_id})
    return {"ok": True, "id": message_id}
