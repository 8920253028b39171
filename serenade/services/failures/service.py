"""
FailureRecoveryService: moves failed (or stale generating) variants back into the pipeline
and keeps the failed_jobs backstop for errors outside the per-variant path.

Every reset is a conditional UPDATE guarded on the current status, so repeating it is a no-op.
"""
import logging
import traceback
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import update
from sqlalchemy.orm import Session

from serenade.models.failed_job import FailedJob, JOB_TYPE_SONG_GENERATION
from serenade.models.order import Order
from serenade.models.song_variant import (
    VARIANT_FAILED,
    VARIANT_GENERATING,
    VARIANT_PENDING,
    SongVariant,
)
from serenade.services.errors import DomainError, NotFoundError
from serenade.services.orders.service import OrderService

logger = logging.getLogger(__name__)


class FailureRecoveryService:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Failed-job records
    # ------------------------------------------------------------------

    def record_failed_job(
        self,
        job_type: str,
        event_data: dict[str, Any],
        error: BaseException | str | None = None,
    ) -> FailedJob:
        """Add a FailedJob row (flushed, caller commits)."""
        if isinstance(error, BaseException):
            message = str(error) or type(error).__name__
            stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        else:
            message, stack = error, None
        job = FailedJob(
            job_type=job_type,
            event_data=event_data,
            error_message=message,
            error_stack=stack,
            retry_count=0,
            failed_at=datetime.now(timezone.utc),
        )
        self.db.add(job)
        self.db.flush()
        logger.warning("failed_job_recorded", extra={"job_id": job.id, "status": job_type, "error": message})
        return job

    def list_open_jobs(self, limit: int = 50, offset: int = 0) -> list[FailedJob]:
        return (
            self.db.query(FailedJob)
            .filter(FailedJob.resolved_at.is_(None))
            .order_by(FailedJob.failed_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def resolve_job(self, job_id: str, notes: str | None = None) -> FailedJob:
        job = self._get_job(job_id)
        job.resolved_at = datetime.now(timezone.utc)
        job.notes = notes or "Resolved by admin"
        self.db.add(job)
        self.db.commit()
        return job

    def retry_job(self, job_id: str, notes: str | None = None) -> str:
        """
        Close the job and put its order back in line. Returns the order id to re-enqueue.
        A job carrying a variantNumber resets that variant; otherwise every failed variant of the order.
        """
        job = self._get_job(job_id)
        data = job.event_data or {}
        order_id = data.get("orderId")
        if not order_id:
            raise DomainError("This job has no order to retry")
        if self.db.query(Order.id).filter(Order.id == order_id).one_or_none() is None:
            raise NotFoundError("Order not found")

        variant_number = data.get("variantNumber")
        if variant_number is not None:
            self._reset_where(order_id, SongVariant.variant_number == int(variant_number))
        else:
            self._reset_where(order_id)
        OrderService(self.db).reopen_for_generation(order_id)

        job.retry_count = (job.retry_count or 0) + 1
        job.resolved_at = datetime.now(timezone.utc)
        job.notes = notes or "Retried by admin"
        self.db.add(job)
        self.db.commit()
        return order_id

    def _get_job(self, job_id: str) -> FailedJob:
        job = self.db.query(FailedJob).filter(FailedJob.id == job_id).one_or_none()
        if job is None:
            raise NotFoundError("Failed job not found")
        return job

    # ------------------------------------------------------------------
    # Variant resets
    # ------------------------------------------------------------------

    def _reset_where(self, order_id: str, *criteria) -> int:
        result = self.db.execute(
            update(SongVariant)
            .where(
                SongVariant.order_id == order_id,
                SongVariant.generation_status == VARIANT_FAILED,
                *criteria,
            )
            .values(
                generation_status=VARIANT_PENDING,
                completed_at=None,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        self.db.flush()
        return result.rowcount

    def reset_variant(self, variant_id: str) -> dict:
        """
        Admin reset of one variant. failed -> pending; pending is a no-op;
        generating/complete are rejected. Commits.
        """
        variant = self.db.query(SongVariant).filter(SongVariant.id == variant_id).one_or_none()
        if variant is None:
            raise NotFoundError("Variant not found")
        if variant.generation_status == VARIANT_PENDING:
            return {"reset": False, "orderId": variant.order_id}
        if variant.generation_status != VARIANT_FAILED:
            raise DomainError("Only failed generations can be retried")

        reset = self._reset_where(variant.order_id, SongVariant.id == variant_id) > 0
        if reset:
            OrderService(self.db).reopen_for_generation(variant.order_id)
        self.db.commit()
        logger.info("variant_reset", extra={"variant_id": variant_id, "order_id": variant.order_id})
        return {"reset": reset, "orderId": variant.order_id}

    def reset_failed_variants(self, order_id: str, user_id: str) -> int:
        """User-driven reset of every failed variant on their own order. Returns resetCount."""
        order = (
            self.db.query(Order)
            .filter(Order.id == order_id, Order.user_id == user_id)
            .one_or_none()
        )
        if order is None:
            raise NotFoundError("Order not found")
        reset_count = self._reset_where(order_id)
        if reset_count > 0:
            OrderService(self.db).reopen_for_generation(order_id)
        self.db.commit()
        logger.info("failed_variants_reset", extra={"order_id": order_id, "user_id": user_id, "reset_count": reset_count})
        return reset_count

    def fail_stale_generating(self, cutoff: datetime) -> list[str]:
        """
        Variants claimed before cutoff and still generating are treated as failed
        (the worker running them is gone). Returns the affected order ids after finalising them.
        """
        stale = (
            self.db.query(SongVariant)
            .filter(
                SongVariant.generation_status == VARIANT_GENERATING,
                SongVariant.updated_at < cutoff,
            )
            .all()
        )
        order_ids: list[str] = []
        for variant in stale:
            result = self.db.execute(
                update(SongVariant)
                .where(SongVariant.id == variant.id, SongVariant.generation_status == VARIANT_GENERATING)
                .values(
                    generation_status=VARIANT_FAILED,
                    completed_at=datetime.now(timezone.utc),
                    updated_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                continue
            self.record_failed_job(
                JOB_TYPE_SONG_GENERATION,
                {"orderId": variant.order_id, "variantNumber": variant.variant_number, "variantId": variant.id},
                "generation timed out (stale generating)",
            )
            if variant.order_id not in order_ids:
                order_ids.append(variant.order_id)
        self.db.commit()

        orders = OrderService(self.db)
        for order_id in order_ids:
            orders.finalize_order_if_settled(order_id)
        return order_ids
