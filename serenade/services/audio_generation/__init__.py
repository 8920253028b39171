"""
Audio generation service with pluggable providers.
"""
from .base import (
    AudioGenerationProvider,
    AudioGenerationRequest,
    AudioGenerationResponse,
    AudioGenerationError,
)
from .factory import AudioProviderFactory
from .runner import generate_with_retry
from .failure_types import FailureType, classify_failure

__all__ = [
    "AudioGenerationProvider",
    "AudioGenerationRequest",
    "AudioGenerationResponse",
    "AudioGenerationError",
    "AudioProviderFactory",
    "generate_with_retry",
    "FailureType",
    "classify_failure",
]
