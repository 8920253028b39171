from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from serenade.db.session import get_db
from serenade.schemas.email import GiftEmailRequest, GiftEmailSent
from serenade.services.auth.identity import AuthUser, get_current_user
from serenade.services.email.service import EmailService


router = APIRouter(prefix="/api/email", tags=["email"])


@router.post("/send-gift", response_model=GiftEmailSent, response_model_by_alias=True)
def send_gift(
    payload: GiftEmailRequest,
    user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> GiftEmailSent:
    scheduled = EmailService(db).send_gift(user.id, payload)
    return GiftEmailSent(scheduled=scheduled)
