from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String

from serenade.db.base import Base, JSONType


class EmailPreferences(Base):
    __tablename__ = "email_preferences"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, ForeignKey("users.id"), unique=True, nullable=False)
    global_unsubscribe = Column(Boolean, nullable=False, default=False)
    occasion_unsubscribes = Column(JSONType, nullable=False, default=list)  # order ids opted out of reminders
    unsubscribe_token = Column(String, unique=True, nullable=False, default=lambda: str(uuid4()))
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
