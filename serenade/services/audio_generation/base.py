"""
Base classes and types for audio generation providers.
Used by factory, runner and the ElevenLabs provider.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class AudioGenerationRequest:
    """Request for one song render."""
    prompt: str
    duration_ms: int
    model: str | None = None
    force_instrumental: bool = False


@dataclass
class AudioGenerationResponse:
    """Rendered audio plus what actually produced it."""
    audio_content: bytes
    model: str
    provider: str
    duration_ms: int | None = None
    prompt_used: str | None = None


class AudioGenerationError(Exception):
    """Raised when generation fails; detail holds http_status / provider status for the runner."""
    def __init__(self, message: str, detail: dict[str, Any] | None = None):
        super().__init__(message)
        self.detail = detail or {}


class AudioGenerationProvider(ABC):
    """Base class for audio generation providers."""

    def __init__(self, config: dict) -> None:
        self.config = config

    @abstractmethod
    def is_available(self) -> bool:
        """Check if provider is configured and available."""
        pass

    @abstractmethod
    def generate(self, request: AudioGenerationRequest) -> AudioGenerationResponse:
        """Render audio for request. Raises AudioGenerationError on failure."""
        pass
