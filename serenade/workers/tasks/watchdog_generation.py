"""
Celery beat task: variants left in 'generating' past the stale threshold are failed,
recorded as FailedJob and their orders settled, so clients stop polling forever.
"""
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import ProgrammingError

from serenade.core.celery_app import celery_app
from serenade.core.config import settings
from serenade.db.session import SessionLocal
from serenade.services.failures.service import FailureRecoveryService

logger = logging.getLogger(__name__)


@celery_app.task(
    name="serenade.workers.tasks.watchdog_generation.reset_stale_generating",
    time_limit=120,
    soft_time_limit=110,
)
def reset_stale_generating() -> dict:
    db = SessionLocal()
    try:
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=settings.generation_stale_minutes)
        order_ids = FailureRecoveryService(db).fail_stale_generating(cutoff)
        if order_ids:
            logger.warning("watchdog_failed_stale_generating", extra={"reset_count": len(order_ids)})
        return {"ok": True, "order_ids": order_ids}
    except ProgrammingError as e:
        msg = str(e.orig) if getattr(e, "orig", None) else str(e)
        if "does not exist" in msg or "UndefinedTable" in msg:
            db.rollback()
            return {"ok": True, "skipped": "table_not_found"}
        logger.exception("watchdog_generation_error")
        db.rollback()
        return {"ok": False}
    except Exception:
        logger.exception("watchdog_generation_error")
        db.rollback()
        return {"ok": False}
    finally:
        db.close()
