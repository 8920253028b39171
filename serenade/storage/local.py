"""
Filesystem blob store rooted at settings.storage_base_path.
Signed read URLs carry the path in an itsdangerous token checked by /api/storage/{token}.
"""
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from serenade.core.config import settings
from serenade.storage.base import Storage, StorageError

MAX_URL_TTL_SECONDS = 86400


class LocalStorage(Storage):
    def __init__(self, base_path: str | None = None, signing_secret: str | None = None) -> None:
        self.base_path = Path(base_path or settings.storage_base_path).resolve()
        self.serializer = URLSafeTimedSerializer(
            signing_secret or settings.storage_signing_secret,
            salt="song-storage",
        )
        self.default_ttl = settings.signed_url_ttl_seconds

    def _full_path(self, path: str) -> Path:
        full = (self.base_path / path.lstrip("/")).resolve()
        if full != self.base_path and self.base_path not in full.parents:
            raise StorageError(f"path escapes storage root: {path}")
        return full

    def upload(self, path: str, content: bytes, content_type: str = "audio/mpeg") -> str:
        if not content:
            raise StorageError("refusing to store empty content")
        full = self._full_path(path)
        full.parent.mkdir(parents=True, exist_ok=True)
        tmp = full.with_name(full.name + ".part")
        try:
            tmp.write_bytes(content)
            os.replace(tmp, full)
        except OSError as e:
            raise StorageError(f"write failed for {path}: {e}") from e
        return path

    def read(self, path: str) -> bytes:
        full = self._full_path(path)
        try:
            return full.read_bytes()
        except FileNotFoundError as e:
            raise StorageError(f"not found: {path}") from e

    def exists(self, path: str) -> bool:
        return self._full_path(path).is_file()

    def signed_url(self, path: str, expires_in: int | None = None) -> str:
        token = self.serializer.dumps({"p": path, "ttl": expires_in or self.default_ttl})
        return f"{settings.app_url.rstrip('/')}/api/storage/{token}"

    def resolve_signed_token(self, token: str) -> str | None:
        """Path for a valid, unexpired token; None otherwise."""
        try:
            data, issued_at = self.serializer.loads(token, max_age=MAX_URL_TTL_SECONDS, return_timestamp=True)
        except (BadSignature, SignatureExpired):
            return None
        if not isinstance(data, dict) or not data.get("p"):
            return None
        ttl = int(data.get("ttl") or self.default_ttl)
        if datetime.now(timezone.utc) - issued_at > timedelta(seconds=ttl):
            return None
        return str(data["p"])


_storage: LocalStorage | None = None


def get_storage() -> LocalStorage:
    global _storage
    if _storage is None:
        _storage = LocalStorage()
    return _storage
