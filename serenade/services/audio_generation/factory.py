"""
Factory for creating audio generation providers based on configuration.
"""
import logging
from typing import Optional

from serenade.services.audio_generation.base import AudioGenerationProvider
from serenade.services.audio_generation.providers.elevenlabs import ElevenLabsMusicProvider

logger = logging.getLogger(__name__)


class AudioProviderFactory:
    """Factory for creating audio generation providers."""

    PROVIDERS = {
        "elevenlabs": ElevenLabsMusicProvider,
    }

    @classmethod
    def create(cls, provider_name: str, config: dict) -> AudioGenerationProvider:
        """
        Create provider instance by name.

        Raises:
            ValueError: If provider name is unknown
        """
        provider_class = cls.PROVIDERS.get(provider_name.lower())

        if not provider_class:
            available = ", ".join(cls.PROVIDERS.keys())
            raise ValueError(
                f"Unknown provider: {provider_name}. "
                f"Available providers: {available}"
            )

        logger.info(f"Creating audio provider: {provider_name}")
        provider = provider_class(config)

        if not provider.is_available():
            logger.warning(f"Provider {provider_name} created but not fully configured")

        return provider

    @classmethod
    def create_from_settings(cls, settings, provider_override: Optional[str] = None) -> AudioGenerationProvider:
        provider_name = (provider_override or "").strip() or settings.audio_provider

        if provider_name == "elevenlabs":
            config = {
                "api_key": settings.elevenlabs_api_key,
                "api_url": getattr(settings, "elevenlabs_api_url", None),
                "timeout": getattr(settings, "elevenlabs_timeout", 55.0),
                "model": getattr(settings, "elevenlabs_model", "music_v1"),
            }
        else:
            raise ValueError(f"Provider {provider_name} not supported in settings")

        return cls.create(provider_name, config)

    @classmethod
    def get_available_providers(cls) -> list[str]:
        return list(cls.PROVIDERS.keys())
