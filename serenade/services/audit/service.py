"""
Audit trail for the admin surface. Routes record an action after their own change has
committed, so every entry describes something that actually happened.
"""
import logging
from typing import Any

from sqlalchemy.orm import Session

from serenade.models.audit_log import ACTOR_ADMIN, ADMIN_ACTIONS, AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def record_admin_action(
        self,
        action: str,
        entity_id: str | None,
        details: dict[str, Any] | None = None,
        actor_id: str | None = None,
    ) -> AuditLog:
        entity_type = ADMIN_ACTIONS.get(action)
        if entity_type is None:
            raise ValueError(f"unknown admin action: {action}")
        entry = AuditLog(
            actor_type=ACTOR_ADMIN,
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            payload=details or {},
        )
        self.db.add(entry)
        self.db.commit()
        logger.info("admin_action_recorded", extra={"status": action, "job_id": entity_id})
        return entry

    def history(self, entity_type: str, entity_id: str, limit: int = 50) -> list[AuditLog]:
        return (
            self.db.query(AuditLog)
            .filter(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.created_at.desc())
            .limit(limit)
            .all()
        )
