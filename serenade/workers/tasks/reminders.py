"""
Celery beat task: anniversary reminders, sent once a day for occasions a week away.
"""
import logging
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import extract, func
from sqlalchemy.orm import Session

from serenade.core.celery_app import celery_app
from serenade.db.session import SessionLocal
from serenade.models.email_preferences import EmailPreferences
from serenade.models.order import ORDER_STATUS_COMPLETED, ORDER_STATUS_PAID, ORDER_TYPE_BASE, Order
from serenade.services.email.service import EmailService

logger = logging.getLogger(__name__)

REMINDER_DAYS_AHEAD = 7
ACTIVE_CUSTOMER_DAYS = 548  # about 18 months


def due_reminders(db: Session, today: date, now: datetime) -> list[tuple[Order, EmailPreferences]]:
    """Base orders whose occasion falls REMINDER_DAYS_AHEAD from today, for users still opted in."""
    target = today + timedelta(days=REMINDER_DAYS_AHEAD)
    active_since = now - timedelta(days=ACTIVE_CUSTOMER_DAYS)

    latest_order = (
        db.query(Order.user_id.label("user_id"), func.max(Order.created_at).label("last_order_at"))
        .group_by(Order.user_id)
        .subquery()
    )
    rows = (
        db.query(Order, EmailPreferences)
        .join(EmailPreferences, EmailPreferences.user_id == Order.user_id)
        .join(latest_order, latest_order.c.user_id == Order.user_id)
        .filter(
            Order.order_type == ORDER_TYPE_BASE,
            Order.status.in_([ORDER_STATUS_COMPLETED, ORDER_STATUS_PAID]),
            Order.occasion_date.isnot(None),
            extract("month", Order.occasion_date) == target.month,
            extract("day", Order.occasion_date) == target.day,
            EmailPreferences.global_unsubscribe.is_(False),
            latest_order.c.last_order_at >= active_since,
        )
        .all()
    )
    return [(order, prefs) for order, prefs in rows if order.id not in (prefs.occasion_unsubscribes or [])]


@celery_app.task(
    name="serenade.workers.tasks.reminders.check_anniversaries",
    time_limit=300,
    soft_time_limit=290,
)
def check_anniversaries() -> dict:
    db = SessionLocal()
    try:
        now = datetime.now(timezone.utc)
        due = due_reminders(db, now.date(), now)
        email = EmailService(db)
        sent = 0
        for order, prefs in due:
            if email.send_anniversary_reminder(order, prefs.unsubscribe_token):
                sent += 1
        logger.info("anniversary_reminders_enqueued", extra={"remaining": len(due) - sent, "status": sent})
        return {"ok": True, "due": len(due), "sent": sent}
    except Exception:
        logger.exception("anniversary_reminders_error")
        db.rollback()
        return {"ok": False}
    finally:
        db.close()
