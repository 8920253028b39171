import logging

from sqlalchemy.orm import Session

from serenade.models.email_preferences import EmailPreferences
from serenade.models.order import Order
from serenade.services.errors import NotFoundError

logger = logging.getLogger(__name__)

SCOPE_ORDER = "order"
SCOPE_ALL = "all"


class EmailPreferencesService:
    def __init__(self, db: Session):
        self.db = db

    def unsubscribe(self, token: str, order_id: str | None = None, unsubscribe_all: bool = False) -> str:
        """Opt out of one order's reminders, or of all reminders. Returns the scope applied."""
        prefs = (
            self.db.query(EmailPreferences)
            .filter(EmailPreferences.unsubscribe_token == token)
            .with_for_update()
            .one_or_none()
        )
        if prefs is None:
            raise NotFoundError("Unsubscribe link not recognised")

        if unsubscribe_all or not order_id:
            prefs.global_unsubscribe = True
            scope = SCOPE_ALL
        else:
            owned = (
                self.db.query(Order.id)
                .filter(Order.id == order_id, Order.user_id == prefs.user_id)
                .one_or_none()
            )
            if owned is None:
                self.db.rollback()
                raise NotFoundError("Unsubscribe link not recognised")
            opted_out = list(prefs.occasion_unsubscribes or [])
            if order_id not in opted_out:
                opted_out.append(order_id)
            prefs.occasion_unsubscribes = opted_out
            scope = SCOPE_ORDER

        self.db.add(prefs)
        self.db.commit()
        logger.info("email_unsubscribed", extra={"user_id": prefs.user_id, "order_id": order_id, "status": scope})
        return scope
