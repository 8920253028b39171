"""
AuditLog: one row per admin mutation (failed-job triage, generation resets).
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, Index, String

from serenade.db.base import Base, JSONType

ACTOR_ADMIN = "admin"

ENTITY_FAILED_JOB = "failed_job"
ENTITY_SONG_VARIANT = "song_variant"
ENTITY_ORDER = "order"

ACTION_FAILED_JOB_RESOLVE = "failed_job_resolve"
ACTION_FAILED_JOB_RETRY = "failed_job_retry"
ACTION_GENERATION_RETRY = "generation_retry"
ACTION_GENERATION_RESET_STALE = "generation_reset_stale"

ADMIN_ACTIONS = {
    ACTION_FAILED_JOB_RESOLVE: ENTITY_FAILED_JOB,
    ACTION_FAILED_JOB_RETRY: ENTITY_FAILED_JOB,
    ACTION_GENERATION_RETRY: ENTITY_SONG_VARIANT,
    ACTION_GENERATION_RESET_STALE: ENTITY_ORDER,
}


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (Index("ix_audit_logs_entity", "entity_type", "entity_id"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    actor_type = Column(String, nullable=False, default=ACTOR_ADMIN)
    actor_id = Column(String, nullable=True)
    action = Column(String, nullable=False)
    entity_type = Column(String, nullable=False)
    entity_id = Column(String, nullable=True)
    payload = Column(JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
