"""
Generate-with-retry around a provider: bounded retry budget with jitter, failure
classification and one structured log line per attempt outcome.
Only transport-level failures are retried here; anything else fails the variant.
"""
import logging
import random
import time
from typing import Any

from serenade.services.audio_generation.base import (
    AudioGenerationProvider,
    AudioGenerationRequest,
    AudioGenerationResponse,
    AudioGenerationError,
)
from serenade.services.audio_generation.failure_types import classify_failure

logger = logging.getLogger(__name__)

LOG_KEYS = (
    "provider",
    "attempt",
    "success_after_retry",
    "failure_type",
    "retry_allowed",
    "http_status",
)


def generate_with_retry(
    provider: AudioGenerationProvider,
    request: AudioGenerationRequest,
    settings: Any,
) -> AudioGenerationResponse:
    max_attempts = getattr(settings, "audio_generation_retry_max_attempts", 2)
    backoff_seconds = getattr(settings, "audio_generation_retry_backoff_seconds", 2.0)
    provider_name = type(provider).__name__

    last_error: AudioGenerationError | None = None
    attempt = 0

    while attempt < max_attempts:
        attempt += 1
        try:
            result = provider.generate(request)
            if attempt > 1:
                _log_structured(provider=provider_name, attempt=attempt, success_after_retry=True)
            return result
        except AudioGenerationError as e:
            last_error = e
            detail = e.detail
            http_status = detail.get("http_status")
            failure_type, retry_allowed = classify_failure(http_status, detail, str(e))
            detail["failure_type"] = failure_type.value

            _log_structured(
                provider=provider_name,
                attempt=attempt,
                success_after_retry=False,
                failure_type=failure_type.value,
                retry_allowed=retry_allowed,
                http_status=http_status,
            )

            if not retry_allowed or attempt >= max_attempts:
                raise

            delay = backoff_seconds
            if http_status == 429 and detail.get("retry_after"):
                try:
                    delay = float(detail["retry_after"])
                except (TypeError, ValueError):
                    pass
            delay += random.uniform(0, 1)
            logger.info(
                "audio_generation_retry_scheduled",
                extra={"attempt": attempt, "failure_type": failure_type.value},
            )
            time.sleep(delay)

    if last_error is not None:
        raise last_error
    raise RuntimeError("generate_with_retry: no result and no error")


def _log_structured(**kwargs: Any) -> None:
    extra = {k: v for k, v in kwargs.items() if k in LOG_KEYS and v is not None}
    logger.info("audio_generation_result", extra=extra)
