"""
FailedJob: durable record of failures outside the normal request path
(generation errors, dropped webhooks). resolved_at IS NULL means the job is still open.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, String, Text

from serenade.db.base import Base, JSONType

JOB_TYPE_SONG_GENERATION = "song_generation"
JOB_TYPE_WEBHOOK = "stripe_webhook"


class FailedJob(Base):
    __tablename__ = "failed_jobs"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    job_type = Column(String, nullable=False, index=True)
    event_data = Column(JSONType, nullable=False, default=dict)  # original payload, for replay
    error_message = Column(Text, nullable=True)
    error_stack = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    failed_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
