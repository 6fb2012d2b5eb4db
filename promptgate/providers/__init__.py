"""Provider registry: maps a vendor tag to the adapter that serves it."""
import logging
from typing import Dict, Iterable, Optional

from promptgate.config.loader import AiVendor, vendor_tag
from promptgate.core.errors import UnsupportedVendor

from .base import NoContent, Provider, ProviderError, ProviderRequest, ProviderResponse
from .anthropic_provider import AnthropicProvider
from .gemini_provider import GeminiProvider
from .openai_client import OpenAIProvider, list_compatible_models

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Adding a vendor means registering an adapter here."""

    def __init__(self) -> None:
        self._providers: Dict[str, Provider] = {}

    def register(self, vendor, provider: Provider) -> None:
        self._providers[vendor_tag(vendor)] = provider

    def get(self, vendor) -> Optional[Provider]:
        return self._providers.get(vendor_tag(vendor))

    def vendors(self) -> Iterable[str]:
        return self._providers.keys()

    def __contains__(self, vendor) -> bool:
        return vendor_tag(vendor) in self._providers

    async def dispatch(self, vendor, request: ProviderRequest) -> ProviderResponse:
        """Run a request on the adapter registered for a vendor.

        Raises:
            UnsupportedVendor: If no adapter is registered for the tag
        """
        provider = self.get(vendor)
        if provider is None:
            raise UnsupportedVendor(vendor_tag(vendor))
        logger.debug("Dispatching %s to %s", request.model, provider.name)
        return await provider.dispatch(request)


def build_default_registry(timeout: float = 600.0, max_retries: int = 5) -> ProviderRegistry:
    """Registry with the bundled adapters.

    OpenAI and custom OpenAI-compatible endpoints share one adapter; the
    request's base URL tells them apart.
    """
    openai_provider = OpenAIProvider(timeout=timeout, max_retries=max_retries)

    registry = ProviderRegistry()
    registry.register(AiVendor.OPENAI, openai_provider)
    registry.register(AiVendor.CUSTOM_OPENAI_COMPATIBLE, openai_provider)
    registry.register(AiVendor.ANTHROPIC, AnthropicProvider(timeout=timeout, max_retries=max_retries))
    registry.register(AiVendor.GOOGLE, GeminiProvider(timeout=timeout, max_retries=max_retries))
    return registry


__all__ = [
    "AnthropicProvider",
    "GeminiProvider",
    "NoContent",
    "OpenAIProvider",
    "Provider",
    "ProviderError",
    "ProviderRegistry",
    "ProviderRequest",
    "ProviderResponse",
    "build_default_registry",
    "list_compatible_models",
]
