"""
Admin API: failed jobs and manual generation recovery.
Every mutation is written to the audit log.
"""
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from serenade.core.config import settings
from serenade.db.session import get_db
from serenade.models.audit_log import (
    ACTION_FAILED_JOB_RESOLVE,
    ACTION_FAILED_JOB_RETRY,
    ACTION_GENERATION_RESET_STALE,
    ACTION_GENERATION_RETRY,
)
from serenade.schemas.admin import AuditEntryOut, FailedJobAction, FailedJobOut
from serenade.services.audit.service import AuditService
from serenade.services.auth.identity import require_admin
from serenade.services.failures.service import FailureRecoveryService
from serenade.services.generation.chain import enqueue_generation

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


# ---------- Failed jobs ----------
@router.get("/failed-jobs")
def list_failed_jobs(
    db: Session = Depends(get_db),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
):
    jobs = FailureRecoveryService(db).list_open_jobs(limit=page_size, offset=(page - 1) * page_size)
    return {"items": [FailedJobOut.model_validate(j).model_dump(mode="json") for j in jobs], "page": page}


@router.patch("/failed-jobs/{job_id}")
def update_failed_job(
    job_id: str,
    payload: FailedJobAction,
    db: Session = Depends(get_db),
    actor: str = Depends(require_admin),
):
    svc = FailureRecoveryService(db)
    audit = AuditService(db)
    if payload.action == "retry":
        order_id = svc.retry_job(job_id, payload.notes)
        chained = enqueue_generation(order_id)
        audit.record_admin_action(ACTION_FAILED_JOB_RETRY, job_id, {"orderId": order_id}, actor_id=actor)
        return {"id": job_id, "action": "retry", "orderId": order_id, "chained": chained}
    job = svc.resolve_job(job_id, payload.notes)
    audit.record_admin_action(ACTION_FAILED_JOB_RESOLVE, job_id, {"notes": job.notes}, actor_id=actor)
    return {"id": job_id, "action": "resolve"}


# ---------- Generations ----------
@router.post("/generations/{variant_id}/retry")
def retry_generation(variant_id: str, db: Session = Depends(get_db), actor: str = Depends(require_admin)):
    result = FailureRecoveryService(db).reset_variant(variant_id)
    if result["reset"]:
        enqueue_generation(result["orderId"])
    AuditService(db).record_admin_action(ACTION_GENERATION_RETRY, variant_id, result, actor_id=actor)
    return result


@router.post("/generations/reset-stale")
def reset_stale_generations(
    db: Session = Depends(get_db),
    minutes: int = Query(settings.generation_stale_minutes, ge=1),
    actor: str = Depends(require_admin),
):
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=minutes)
    order_ids = FailureRecoveryService(db).fail_stale_generating(cutoff)
    audit = AuditService(db)
    for order_id in order_ids:
        audit.record_admin_action(ACTION_GENERATION_RESET_STALE, order_id, {"minutes": minutes}, actor_id=actor)
    return {"orderIds": order_ids, "count": len(order_ids)}


# ---------- Audit ----------
@router.get("/audit/{entity_type}/{entity_id}")
def audit_history(entity_type: str, entity_id: str, db: Session = Depends(get_db)):
    entries = AuditService(db).history(entity_type, entity_id)
    return {"items": [AuditEntryOut.model_validate(e).model_dump(mode="json") for e in entries]}
