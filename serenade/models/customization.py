"""
Customization: the song brief a user fills in before paying.
The brief itself is never edited after creation; tweaks are appended as CustomizationTweak rows.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text

from serenade.db.base import Base, JSONType


class Customization(Base):
    __tablename__ = "customizations"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    recipient_name = Column(String, nullable=False)
    your_name = Column(String, nullable=False)
    occasion = Column(String, nullable=False)
    song_length = Column(Integer, nullable=False, default=90)  # seconds: 60 / 90 / 120
    mood = Column(JSONType, nullable=False, default=list)
    genre = Column(String, nullable=False)
    voice = Column(String, nullable=True)
    language = Column(String, nullable=True)
    tempo = Column(String, nullable=True)
    relationship = Column(String, nullable=True)
    song_title = Column(String, nullable=True)
    special_memories = Column(Text, nullable=True)
    things_to_avoid = Column(Text, nullable=True)
    pronunciation = Column(String, nullable=True)
    occasion_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class CustomizationTweak(Base):
    """Amendment to a brief's free-text fields. The newest row wins when building prompts."""

    __tablename__ = "customization_tweaks"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    customization_id = Column(String, ForeignKey("customizations.id"), nullable=False, index=True)
    order_id = Column(String, ForeignKey("orders.id"), nullable=False, index=True)
    special_memories = Column(Text, nullable=True)
    things_to_avoid = Column(Text, nullable=True)
    pronunciation = Column(String, nullable=True)
    source = Column(String, nullable=False, default="free")  # free | paid
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
