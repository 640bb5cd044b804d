"""
Provider registry for creating chat providers by name.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from .errors import ProviderNotFoundError
from .interface import AbstractProvider

logger = logging.getLogger(__name__)

ProviderFactory = Callable[..., AbstractProvider]


class ProviderName(str, Enum):
    """Closed set of provider names known to the gateway."""
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    OPENROUTER = "openrouter"
    GOOGLE_AI = "google-ai"
    GITHUB_MODELS = "github-models"
    CLAUDE_MAX = "claude-max"


def _key(name: Union[ProviderName, str]) -> str:
    return name.value if isinstance(name, ProviderName) else name


class ProviderRegistry:
    """
    Registry of provider factories.

    A factory is any callable taking ``(credentials, **kwargs)`` and
    returning an ``AbstractProvider``; provider classes qualify directly.
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._factories: Dict[str, ProviderFactory] = {}

    def register_provider(self, name: Union[ProviderName, str], factory: ProviderFactory) -> None:
        """
        Register a provider factory. Re-registering a name replaces it.

        Args:
            name: Provider name
            factory: Callable building the provider
        """
        key = _key(name)
        if key in self._factories:
            logger.info(f"Replacing registered provider: {key}")
        self._factories[key] = factory
        logger.debug(f"Registered provider: {key}")

    def create_provider(
        self,
        name: Union[ProviderName, str],
        credentials: Any,
        **kwargs: Any,
    ) -> AbstractProvider:
        """
        Instantiate a registered provider.

        Args:
            name: Provider name
            credentials: Credentials accepted by that provider
            **kwargs: Extra constructor arguments (config, transport, ...)

        Returns:
            Provider instance

        Raises:
            ProviderNotFoundError: If ``name`` is not registered
        """
        key = _key(name)
        factory = self._factories.get(key)
        if factory is None:
            raise ProviderNotFoundError(key, self.list_providers())

        provider = factory(credentials, **kwargs)
        logger.info(f"Created provider: {key}")
        return provider

    def list_providers(self) -> List[str]:
        """Names of all registered providers, in registration order."""
        return list(self._factories)

    def __contains__(self, name: Union[ProviderName, str]) -> bool:
        return _key(name) in self._factories


def register_default_providers(registry: ProviderRegistry) -> ProviderRegistry:
    """Register every built-in provider on ``registry``."""
    # Imported here so core modules stay importable without the providers
    from ..providers import (
        AnthropicProvider,
        ClaudeMaxProvider,
        GitHubModelsProvider,
        GoogleAIProvider,
        OpenAIProvider,
        OpenRouterProvider,
    )

    registry.register_provider(ProviderName.ANTHROPIC, AnthropicProvider)
    registry.register_provider(ProviderName.OPENAI, OpenAIProvider)
    registry.register_provider(ProviderName.OPENROUTER, OpenRouterProvider)
    registry.register_provider(ProviderName.GOOGLE_AI, GoogleAIProvider)
    registry.register_provider(ProviderName.GITHUB_MODELS, GitHubModelsProvider)
    registry.register_provider(ProviderName.CLAUDE_MAX, ClaudeMaxProvider)
    return registry


# Global registry instance
_registry: Optional[ProviderRegistry] = None


def get_registry() -> ProviderRegistry:
    """Get the global provider registry, populated with the built-in providers."""
    global _registry
    if _registry is None:
        _registry = register_default_providers(ProviderRegistry())
    return _registry


def register_provider(name: Union[ProviderName, str], factory: ProviderFactory) -> None:
    """Register a provider factory on the global registry."""
    get_registry().register_provider(name, factory)


def create_provider(
    name: Union[ProviderName, str],
    credentials: Any,
    **kwargs: Any,
) -> AbstractProvider:
    """Create a provider from the global registry."""
    return get_registry().create_provider(name, credentials, **kwargs)
