"""
Public share page data and audio for the selected variant. The share token is the only
credential; anything but a selected, complete variant is a 404.
"""
import re

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from serenade.db.session import get_db
from serenade.services.errors import NotFoundError
from serenade.services.orders.queries import SharedSong, get_shared_variant
from serenade.storage.base import StorageError
from serenade.storage.local import LocalStorage, get_storage


router = APIRouter(prefix="/api/share", tags=["share"])

_UNSAFE_FILENAME = re.compile(r"[^a-z0-9]+")


def download_filename(recipient_name: str | None) -> str:
    slug = _UNSAFE_FILENAME.sub("-", (recipient_name or "").lower()).strip("-")
    return f"song-{slug or 'for-you'}.mp3"


def _shared_or_404(db: Session, token: str) -> SharedSong:
    shared = get_shared_variant(db, token)
    if shared is None:
        raise NotFoundError("Song not found")
    return shared


def _audio(storage: LocalStorage, shared: SharedSong) -> bytes:
    try:
        return storage.read(shared.storage_path)
    except StorageError as e:
        raise NotFoundError("Song not found") from e


@router.get("/{token}")
def shared_song(token: str, db: Session = Depends(get_db)) -> dict:
    shared = _shared_or_404(db, token)
    return {
        "recipientName": shared.recipient_name,
        "yourName": shared.your_name,
        "occasion": shared.occasion,
        "genre": shared.genre,
        "durationMs": shared.duration_ms,
        "streamUrl": f"/api/share/{token}/stream",
        "downloadUrl": f"/api/share/{token}/download",
    }


@router.get("/{token}/stream")
def stream_shared(
    token: str,
    db: Session = Depends(get_db),
    storage: LocalStorage = Depends(get_storage),
) -> Response:
    shared = _shared_or_404(db, token)
    return Response(
        content=_audio(storage, shared),
        media_type="audio/mpeg",
        headers={"Content-Disposition": "inline", "Cache-Control": "public, max-age=3600"},
    )


@router.get("/{token}/download")
def download_shared(
    token: str,
    db: Session = Depends(get_db),
    storage: LocalStorage = Depends(get_storage),
) -> Response:
    shared = _shared_or_404(db, token)
    filename = download_filename(shared.recipient_name)
    return Response(
        content=_audio(storage, shared),
        media_type="audio/mpeg",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
