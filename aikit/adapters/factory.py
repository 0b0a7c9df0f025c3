"""Provider adapter factory."""

from typing import Optional

from aikit.adapters.base import AIAdapter
from aikit.adapters.vendor_adapter_anthropic import AnthropicAdapter
from aikit.adapters.vendor_adapter_gemini import GeminiAdapter
from aikit.adapters.vendor_adapter_openai import OpenAIAdapter
from aikit.infra.error_handler import UnsupportedProviderError

SUPPORTED_PROVIDERS = ("anthropic", "openai", "google")


def create_adapter(
    provider: str,
    api_key: str,
    model: Optional[str] = None,
    base_url: Optional[str] = None,
) -> AIAdapter:
    """
    Build the adapter for a provider.

    Args:
        provider: 'anthropic' | 'openai' | 'google' ('gemini' is accepted as an alias)
        api_key: Provider API key
        model: Model name; provider default when empty
        base_url: Custom endpoint (OpenAI-compatible servers, Anthropic proxies)

    Returns:
        Initialized adapter

    Raises:
        UnsupportedProviderError: If the provider is unknown
    """
    name = (provider or "").strip().lower()
    if name == "anthropic":
        return AnthropicAdapter(api_key, model=model or None, base_url=base_url or None)
    if name == "openai":
        return OpenAIAdapter(api_key, model=model or None, base_url=base_url or None)
    if name in ("google", "gemini"):
        return GeminiAdapter(api_key, model=model or None)
    raise UnsupportedProviderError(provider)
