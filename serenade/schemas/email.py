import re
from datetime import datetime, timezone

from pydantic import Field, field_validator

from serenade.schemas.base import CamelModel

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class GiftEmailRequest(CamelModel):
    recipient_email: str = Field(max_length=254)
    recipient_name: str = Field(min_length=1, max_length=100)
    sender_name: str = Field(min_length=1, max_length=100)
    share_token: str = Field(min_length=1, max_length=64)
    personal_message: str | None = Field(default=None, max_length=500)
    scheduled_at: datetime | None = None

    @field_validator("recipient_email")
    @classmethod
    def check_email(cls, v: str) -> str:
        v = v.strip()
        if not _EMAIL_RE.match(v):
            raise ValueError("Invalid email address")
        return v

    @field_validator("recipient_name", "sender_name")
    @classmethod
    def strip_names(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("scheduled_at")
    @classmethod
    def check_future(cls, v: datetime | None) -> datetime | None:
        if v is None:
            return None
        # Naive timestamps are taken as UTC
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        if v <= datetime.now(timezone.utc):
            raise ValueError("Scheduled date must be in the future")
        return v


class GiftEmailSent(CamelModel):
    success: bool = True
    scheduled: bool
