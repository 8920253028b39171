from datetime import date
from typing import Literal

from pydantic import Field, field_validator

from serenade.schemas.base import CamelModel

Occasion = Literal["valentines", "birthday", "anniversary", "wedding", "graduation", "just-because"]
Mood = Literal["romantic", "happy", "funny", "nostalgic", "epic"]
Genre = Literal["pop", "acoustic", "electronic", "orchestral", "jazz"]


class CustomizationCreate(CamelModel):
    recipient_name: str = Field(min_length=1, max_length=100)
    your_name: str = Field(min_length=1, max_length=100)
    occasion: Occasion
    song_length: Literal[60, 90, 120] = 90
    mood: list[Mood] = Field(min_length=1)
    genre: Genre
    voice: str | None = Field(default=None, max_length=50)
    language: str | None = Field(default=None, max_length=20)
    tempo: str | None = Field(default=None, max_length=20)
    relationship: str | None = Field(default=None, max_length=50)
    song_title: str | None = Field(default=None, max_length=100)
    special_memories: str | None = Field(default=None, max_length=500)
    things_to_avoid: str | None = Field(default=None, max_length=300)
    pronunciation: str | None = Field(default=None, max_length=100)
    occasion_date: date | None = None

    @field_validator("recipient_name", "your_name")
    @classmethod
    def strip_names(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("song_length", mode="before")
    @classmethod
    def coerce_length(cls, v):
        # The form posts "60" / "90" / "120"
        if isinstance(v, str) and v.isdigit():
            return int(v)
        return v

    @field_validator("mood")
    @classmethod
    def dedupe_moods(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))


class CustomizationCreated(CamelModel):
    customization_id: str
