"""
Client for the external text classifier. Contract: text in, clean yes/no out.
Unconfigured means pass-through; a classifier outage fails closed for the request.
"""
import logging

import httpx

from serenade.core.config import settings
from serenade.services.errors import DomainError

logger = logging.getLogger(__name__)


class ModerationClient:
    def __init__(self, api_url: str | None = None, timeout: float | None = None) -> None:
        self.api_url = (api_url if api_url is not None else settings.moderation_api_url).rstrip("/")
        self.timeout = timeout or settings.moderation_timeout

    def is_clean(self, text: str | None) -> bool:
        if not text or not text.strip() or not self.api_url:
            return True
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(self.api_url, json={"text": text})
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("moderation_unavailable", extra={"error": type(e).__name__})
            raise DomainError("We couldn't check your text right now, please try again", status_code=503) from e
        return bool(data.get("clean", False)) if isinstance(data, dict) else False

    def first_flagged(self, fields: dict[str, str | None]) -> str | None:
        """Name of the first field the classifier rejects, or None if all clean."""
        for name, value in fields.items():
            if not self.is_clean(value):
                return name
        return None


def get_moderation_client() -> ModerationClient:
    return ModerationClient()
