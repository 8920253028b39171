"""
Failure normalization for audio provider calls.
Classifies API and transport failures for retry policy and observability.
"""
from enum import Enum
from typing import Any


class FailureType(str, Enum):
    TRANSPORT_TRANSIENT = "transport_transient"  # 429, 5xx, timeout, network
    PROMPT_REJECTED = "prompt_rejected"  # provider refused the prompt (bad_prompt, moderation)
    CLIENT_NON_RETRIABLE = "client_non_retriable"  # 4xx except 429
    EMPTY_RESPONSE = "empty_response"  # 200 with no audio
    CIRCUIT_OPEN = "circuit_open"


# Provider detail.status values that mean the prompt itself is the problem
PROMPT_REJECTION_STATUSES = frozenset({
    "bad_prompt",
    "content_policy_violation",
    "prompt_too_long",
})


def classify_failure(
    http_status: int | None,
    detail: dict[str, Any],
    message: str = "",
) -> tuple[FailureType, bool]:
    """
    Classify failure from HTTP status and provider detail.
    Returns (failure_type, retry_allowed).
    """
    provider_status = (detail.get("provider_status") or "").strip().lower()
    if provider_status in PROMPT_REJECTION_STATUSES:
        return (FailureType.PROMPT_REJECTED, False)

    if http_status is not None:
        if http_status == 429:
            return (FailureType.TRANSPORT_TRANSIENT, True)
        if 500 <= http_status < 600:
            return (FailureType.TRANSPORT_TRANSIENT, True)
        if 400 <= http_status < 500:
            return (FailureType.CLIENT_NON_RETRIABLE, False)

    if detail.get("empty_response"):
        return (FailureType.EMPTY_RESPONSE, False)

    # No detail (network error, timeout): transient
    return (FailureType.TRANSPORT_TRANSIENT, True)
