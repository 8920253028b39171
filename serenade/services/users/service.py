from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from serenade.models.user import User


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def get_or_create(self, user_id: str, email: str | None = None) -> User:
        """Upsert-on-read for identity-provider users; keeps the stored email current."""
        user = self.db.query(User).filter(User.id == user_id).one_or_none()
        if user is None:
            user = User(id=user_id, email=email)
            self.db.add(user)
            try:
                self.db.commit()
            except IntegrityError:
                # Concurrent first request created it
                self.db.rollback()
                user = self.db.query(User).filter(User.id == user_id).one()
            return user
        if email and user.email != email:
            user.email = email
            user.updated_at = datetime.now(timezone.utc)
            self.db.add(user)
            self.db.commit()
        return user
