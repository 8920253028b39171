import logging

from sqlalchemy.orm import Session

from serenade.models.customization import Customization
from serenade.schemas.customizations import CustomizationCreate
from serenade.services.errors import DomainError
from serenade.services.moderation.service import ModerationClient

logger = logging.getLogger(__name__)

FIELD_LABELS = {
    "recipient_name": "Recipient name",
    "your_name": "Your name",
    "song_title": "Song title",
    "special_memories": "Special memories",
    "things_to_avoid": "Things to avoid",
    "pronunciation": "Pronunciation",
}


class CustomizationService:
    def __init__(self, db: Session, moderation: ModerationClient):
        self.db = db
        self.moderation = moderation

    def create(self, user_id: str, data: CustomizationCreate) -> Customization:
        flagged = self.moderation.first_flagged({name: getattr(data, name) for name in FIELD_LABELS})
        if flagged:
            logger.info("customization_rejected_by_moderation", extra={"user_id": user_id, "error": flagged})
            raise DomainError(f"{FIELD_LABELS[flagged]} contains language we can't include in a song")

        customization = Customization(
            user_id=user_id,
            recipient_name=data.recipient_name,
            your_name=data.your_name,
            occasion=data.occasion,
            song_length=data.song_length,
            mood=list(data.mood),
            genre=data.genre,
            voice=data.voice,
            language=data.language,
            tempo=data.tempo,
            relationship=data.relationship,
            song_title=data.song_title,
            special_memories=data.special_memories,
            things_to_avoid=data.things_to_avoid,
            pronunciation=data.pronunciation,
            occasion_date=data.occasion_date,
        )
        self.db.add(customization)
        self.db.commit()
        self.db.refresh(customization)
        logger.info("customization_created", extra={"user_id": user_id, "customization_id": customization.id})
        return customization
