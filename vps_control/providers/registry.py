"""
VPS Control Provider Registry
=============================

Central registry of backend adapters.
Lets callers pick a backend by id without importing vendor modules.
"""

import logging
from typing import Any, Dict, List, Optional, Type

from .base import ServerProvider
from .errors import not_found

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """
    Registry of available server backends.

    Manages adapter registration and instantiation so callers only deal
    with provider ids and configuration objects.
    """

    _providers: Dict[str, Type[ServerProvider]] = {}

    @classmethod
    def register(cls, provider_class: Type[ServerProvider]) -> None:
        """
        Register a backend adapter class.

        Args:
            provider_class: Class implementing ServerProvider
        """
        cls._providers[provider_class.PROVIDER_ID] = provider_class

    @classmethod
    def get_provider_class(cls, provider_id: str) -> Optional[Type[ServerProvider]]:
        """
        Get a registered adapter class by id.

        Args:
            provider_id: Provider identifier (e.g. 'virtualizor', 'vultr')

        Returns:
            Adapter class or None if not registered
        """
        return cls._providers.get(provider_id)

    @classmethod
    def list_providers(cls) -> List[Dict[str, Any]]:
        """Metadata of every registered backend."""
        return [provider_class.about() for provider_class in cls._providers.values()]

    @classmethod
    def instantiate(cls, provider_id: str, config: Any, **kwargs) -> ServerProvider:
        """
        Create an adapter instance.

        Args:
            provider_id: Provider identifier
            config: The backend's configuration object
            **kwargs: Adapter-specific collaborators (logger, cache, client)

        Returns:
            Configured adapter

        Raises:
            ProviderError: NotFound if no adapter is registered under the id
        """
        provider_class = cls.get_provider_class(provider_id)
        if not provider_class:
            raise not_found(
                f"Provider not found: {provider_id}",
                {"provider": provider_id, "available": sorted(cls._providers)},
            )

        logger.debug("Instantiating %s provider", provider_id, extra={"provider": provider_id})
        return provider_class(config, **kwargs)


def register_provider(provider_class: Type[ServerProvider]) -> Type[ServerProvider]:
    """
    Decorator to register a provider class.

    Usage:
        @register_provider
        class VultrProvider(ServerProvider):
            ...
    """
    ProviderRegistry.register(provider_class)
    return provider_class
