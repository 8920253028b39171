from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from serenade.db.session import get_db
from serenade.services.email.preferences import SCOPE_ALL, EmailPreferencesService
from serenade.services.email.templates import unsubscribe_page
from serenade.services.errors import NotFoundError


router = APIRouter(prefix="/api", tags=["email"])


@router.get("/unsubscribe/{token}", response_class=HTMLResponse)
def unsubscribe(
    token: str,
    order_id: str | None = Query(default=None),
    all: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> HTMLResponse:
    try:
        scope = EmailPreferencesService(db).unsubscribe(token, order_id=order_id, unsubscribe_all=all)
    except NotFoundError:
        return HTMLResponse(
            unsubscribe_page("Link not found", "This unsubscribe link is invalid or has expired."),
            status_code=404,
        )
    if scope == SCOPE_ALL:
        message = "You won't receive any more reminder emails from us."
    else:
        message = "You won't receive reminders for this occasion any more."
    return HTMLResponse(unsubscribe_page("You're unsubscribed", message))
