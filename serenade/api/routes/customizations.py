from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from serenade.db.session import get_db
from serenade.schemas.customizations import CustomizationCreate, CustomizationCreated
from serenade.services.auth.identity import AuthUser, get_current_user
from serenade.services.customizations.service import CustomizationService
from serenade.services.moderation.service import ModerationClient, get_moderation_client


router = APIRouter(prefix="/api", tags=["customizations"])


@router.post("/customizations", response_model=CustomizationCreated, response_model_by_alias=True)
def create_customization(
    payload: CustomizationCreate,
    user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    moderation: ModerationClient = Depends(get_moderation_client),
) -> CustomizationCreated:
    customization = CustomizationService(db, moderation).create(user.id, payload)
    return CustomizationCreated(customization_id=customization.id)
