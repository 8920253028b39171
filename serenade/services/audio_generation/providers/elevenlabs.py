"""
ElevenLabs music provider (POST /v1/music, audio/mpeg in the response body).
A prompt rejected as bad_prompt that comes with a prompt_suggestion is retried once with the suggestion.
"""
import logging
from typing import Any

import httpx

from serenade.services.audio_generation.base import (
    AudioGenerationProvider,
    AudioGenerationRequest,
    AudioGenerationResponse,
    AudioGenerationError,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "music_v1"


def build_elevenlabs_error_detail(status_code: int, body: Any) -> dict[str, Any]:
    """Normalize an error body ({"detail": {"status": ..., "data": {...}}}) for the runner."""
    detail: dict[str, Any] = {"http_status": status_code}
    if not isinstance(body, dict):
        return detail
    err = body.get("detail")
    if isinstance(err, dict):
        if err.get("status"):
            detail["provider_status"] = err.get("status")
        if err.get("message"):
            detail["provider_message"] = err.get("message")
        data = err.get("data") or {}
        if isinstance(data, dict) and data.get("prompt_suggestion"):
            detail["prompt_suggestion"] = data["prompt_suggestion"]
    elif isinstance(err, str):
        detail["provider_message"] = err
    return detail


class ElevenLabsMusicProvider(AudioGenerationProvider):
    def __init__(self, config: dict) -> None:
        super().__init__(config)
        self.api_key = (config.get("api_key") or "").strip()
        self.base_url = (config.get("api_url") or "https://api.elevenlabs.io").rstrip("/")
        self.timeout = float(config.get("timeout", 55.0))
        self.model_name = (config.get("model") or DEFAULT_MODEL).strip()

    def is_available(self) -> bool:
        return bool(self.api_key)

    def generate(self, request: AudioGenerationRequest) -> AudioGenerationResponse:
        if not self.is_available():
            raise AudioGenerationError(
                "ElevenLabs provider not configured (missing api_key)",
                detail={"http_status": 401},
            )
        model = (request.model or self.model_name).strip() or self.model_name
        try:
            content = self._compose(request.prompt, request, model)
            prompt_used = request.prompt
        except AudioGenerationError as e:
            suggestion = e.detail.get("prompt_suggestion")
            if e.detail.get("provider_status") != "bad_prompt" or not suggestion:
                raise
            logger.warning("elevenlabs_prompt_rejected_retrying_with_suggestion")
            content = self._compose(suggestion, request, model)
            prompt_used = suggestion

        return AudioGenerationResponse(
            audio_content=content,
            model=model,
            provider="elevenlabs",
            duration_ms=request.duration_ms,
            prompt_used=prompt_used,
        )

    def _compose(self, prompt: str, request: AudioGenerationRequest, model: str) -> bytes:
        payload = {
            "prompt": prompt,
            "music_length_ms": request.duration_ms,
            "model_id": model,
            "force_instrumental": request.force_instrumental,
        }
        headers = {"xi-api-key": self.api_key, "Content-Type": "application/json"}
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(f"{self.base_url}/v1/music", json=payload, headers=headers)
                resp.raise_for_status()
                content = resp.content
        except httpx.HTTPStatusError as e:
            try:
                err_body = e.response.json()
            except ValueError:
                err_body = {}
            detail = build_elevenlabs_error_detail(e.response.status_code, err_body)
            if e.response.status_code == 429:
                retry_after = e.response.headers.get("Retry-After")
                if retry_after is not None:
                    detail["retry_after"] = retry_after
            msg = detail.get("provider_message") or f"ElevenLabs API error {e.response.status_code}"
            raise AudioGenerationError(msg, detail=detail) from e
        except httpx.HTTPError as e:
            raise AudioGenerationError(f"ElevenLabs request failed: {type(e).__name__}", detail={}) from e

        if not content:
            raise AudioGenerationError("Empty audio in ElevenLabs response", detail={"empty_response": True})
        return content
