"""Provider adapter layer: Kling, Veo, Imagen and Gemini image behind one protocol."""

from __future__ import annotations

from genstudio.capabilities import provider_for_model
from genstudio.config import Settings
from genstudio.errors import AuthenticationError
from genstudio.media import MediaResolver
from genstudio.providers.base import GenerationProvider, retry_async
from genstudio.providers.gemini_image import GeminiImageProvider
from genstudio.providers.imagen import ImagenProvider
from genstudio.providers.kling import KlingProvider
from genstudio.providers.veo import VeoProvider


class ProviderRegistry:
    """Provider instances keyed by name, built once at startup."""

    def __init__(self, providers: dict[str, GenerationProvider]):
        self._providers = dict(providers)

    def get(self, name: str) -> GenerationProvider:
        try:
            return self._providers[name]
        except KeyError:
            raise KeyError(f"No provider registered as {name!r}")

    def for_model(self, model_name: str, *, require_configured: bool = True) -> GenerationProvider:
        provider = self.get(provider_for_model(model_name))
        if require_configured and not provider.is_configured():
            raise AuthenticationError(
                f"{provider.name} is not configured. Check its API credentials.", provider=provider.name
            )
        return provider

    def names(self) -> list[str]:
        return list(self._providers)

    def configured(self) -> dict[str, bool]:
        return {name: p.is_configured() for name, p in self._providers.items()}


def build_registry(settings: Settings, media: MediaResolver, transport=None) -> ProviderRegistry:
    """Return a registry with every provider wired from ``settings``."""
    google = dict(media=media, api_key=settings.google_api_key, base_url=settings.google_api_base_url)
    return ProviderRegistry(
        {
            "kling": KlingProvider(
                media=media,
                access_key=settings.kling_access_key,
                secret_key=settings.kling_secret_key,
                api_key=settings.kling_api_key,
                base_url=settings.kling_api_base_url,
                callback_url=settings.kling_callback_url,
                transport=transport,
            ),
            "veo": VeoProvider(transport=transport, **google),
            "imagen": ImagenProvider(transport=transport, **google),
            "gemini-image": GeminiImageProvider(transport=transport, **google),
        }
    )


__all__ = [
    "GenerationProvider",
    "GeminiImageProvider",
    "ImagenProvider",
    "KlingProvider",
    "ProviderRegistry",
    "VeoProvider",
    "build_registry",
    "retry_async",
]
