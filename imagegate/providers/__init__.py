"""Provider registry: provider id -> ProviderClient implementation."""

from ..errors import ConfigurationError
from .base import ClientOptions, PollSnapshot, ProviderClient
from .gemini import GeminiClient
from .nano_banana import NanoBananaClient

PROVIDERS: dict[str, type[ProviderClient]] = {
    GeminiClient.provider_id: GeminiClient,
    NanoBananaClient.provider_id: NanoBananaClient,
}


def get_provider_class(provider_id: str) -> type[ProviderClient]:
    try:
        return PROVIDERS[provider_id]
    except KeyError as e:
        raise ConfigurationError(f"Unknown provider: {provider_id}") from e


__all__ = [
    "PROVIDERS",
    "ClientOptions",
    "GeminiClient",
    "NanoBananaClient",
    "PollSnapshot",
    "ProviderClient",
    "get_provider_class",
]
