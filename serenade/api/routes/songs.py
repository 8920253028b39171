"""
Owner playback: short-lived signed URLs for a completed variant, and the endpoint that
serves the bytes behind such a URL.
"""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from serenade.core.config import settings
from serenade.db.session import get_db
from serenade.models.song_variant import VARIANT_COMPLETE
from serenade.services.auth.identity import AuthUser, get_current_user
from serenade.services.errors import NotFoundError, PreconditionError
from serenade.services.orders.queries import get_owned_variant
from serenade.storage.base import StorageError
from serenade.storage.local import LocalStorage, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["songs"])


@router.get("/songs/{variant_id}/url")
def song_url(
    variant_id: str,
    user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: LocalStorage = Depends(get_storage),
) -> dict:
    variant = get_owned_variant(db, variant_id, user.id)
    if variant is None:
        raise NotFoundError("Song not found")
    if variant.generation_status != VARIANT_COMPLETE or not variant.storage_path:
        raise PreconditionError("Song is not ready yet")
    return {
        "url": storage.signed_url(variant.storage_path),
        "expiresIn": settings.signed_url_ttl_seconds,
    }


@router.get("/storage/{token}")
def read_signed(token: str, storage: LocalStorage = Depends(get_storage)) -> Response:
    path = storage.resolve_signed_token(token)
    if path is None:
        raise NotFoundError("Link expired or invalid")
    try:
        content = storage.read(path)
    except StorageError as e:
        logger.warning("signed_read_missing", extra={"path": path, "error": str(e)})
        raise NotFoundError("Song not found") from e
    return Response(content=content, media_type="audio/mpeg")
