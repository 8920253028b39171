"""
Admin API schemas.
"""
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict


class FailedJobOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    job_type: str
    event_data: dict[str, Any]
    error_message: str | None
    retry_count: int
    failed_at: datetime
    resolved_at: datetime | None
    notes: str | None


class FailedJobAction(BaseModel):
    action: Literal["resolve", "retry"]
    notes: str | None = None


class AuditEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    actor_id: str | None
    action: str
    entity_type: str
    entity_id: str | None
    payload: dict[str, Any]
    created_at: datetime
