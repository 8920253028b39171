from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String

from serenade.db.base import Base


class User(Base):
    """Local mirror of an identity-provider account. id is the provider's subject."""

    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
