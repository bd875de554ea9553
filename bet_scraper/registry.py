"""Provider registry: which integrations exist, which are usable, which are on."""
import logging
from typing import Callable, Dict, List, Optional

from .config import ProviderCredentials, Settings
from .models import Provider
from .providers.base import BettingProvider
from .providers.bet365 import Bet365Provider

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[Settings], BettingProvider]

# Integrations available to every registry. Add a provider by registering
# its factory here (or on a registry instance), never by editing lookups.
_DEFAULT_FACTORIES: Dict[Provider, ProviderFactory] = {}


class ProviderNotSupportedError(LookupError):
    """Raised when a provider has no registered integration."""

    def __init__(self, provider):
        self.provider = provider
        super().__init__(f"Provider {provider} is not supported")


def register_provider(provider: Provider, factory: ProviderFactory) -> None:
    """Register an integration factory for all registries created afterwards."""
    _DEFAULT_FACTORIES[provider] = factory


register_provider(Provider.BET365, lambda settings: Bet365Provider(headless=settings.headless))


class ProviderRegistry:
    """
    Resolves provider identifiers to integration instances.

    Instances are created lazily on first ``resolve`` and reused for the
    lifetime of the registry, so each provider has exactly one session.
    """

    def __init__(self, settings: Settings, factories: Optional[Dict[Provider, ProviderFactory]] = None):
        self.settings = settings
        self._factories: Dict[Provider, ProviderFactory] = dict(
            _DEFAULT_FACTORIES if factories is None else factories
        )
        self._instances: Dict[Provider, BettingProvider] = {}

    def register(self, provider: Provider, factory: ProviderFactory) -> None:
        self._factories[provider] = factory

    @property
    def implemented(self) -> List[Provider]:
        """Providers with a registered integration, in catalogue order."""
        return [provider for provider in Provider if provider in self._factories]

    def credentials(self, provider: Provider) -> Optional[ProviderCredentials]:
        return self.settings.credentials_for(provider)

    def is_available(self, provider: Provider) -> bool:
        """True if configuration holds a non-empty username and password."""
        credentials = self.settings.credentials_for(provider)
        return credentials is not None and credentials.complete

    def resolve(self, provider: Provider) -> BettingProvider:
        """
        Get the integration for a provider.

        Raises:
            ProviderNotSupportedError: If no integration is registered
        """
        instance = self._instances.get(provider)
        if instance is not None:
            return instance

        factory = self._factories.get(provider)
        if factory is None:
            raise ProviderNotSupportedError(provider)

        instance = factory(self.settings)
        self._instances[provider] = instance
        return instance

    def list_all(self) -> List[BettingProvider]:
        """Every implemented integration. Construction failures are logged and skipped."""
        providers = []
        for provider in self.implemented:
            try:
                providers.append(self.resolve(provider))
            except Exception as e:
                logger.warning(f"Failed to create {provider} provider service: {e}")
        return providers

    def enabled_providers(self) -> List[Provider]:
        """
        Identifiers that should run, without constructing anything.

        The configured enable-list is intersected with implemented and
        available providers. With an empty enable-list, the first
        implemented and available provider is used instead.
        """
        enabled = []
        for name in self.settings.enabled:
            provider = Provider.parse(name)
            if provider is None:
                logger.warning(f"Unknown provider in enable-list: {name!r}")
                continue
            if provider in enabled:
                continue
            if provider not in self._factories:
                logger.warning(f"Provider {provider} is enabled but not implemented")
                continue
            if not self.is_available(provider):
                logger.warning(f"Provider {provider} is enabled but has no credentials configured")
                continue
            enabled.append(provider)

        if not self.settings.enabled:
            fallback = next((p for p in self.implemented if self.is_available(p)), None)
            if fallback is not None:
                logger.info(f"No providers enabled, defaulting to {fallback}")
                enabled.append(fallback)

        return enabled

    def list_enabled(self) -> List[BettingProvider]:
        """Integrations for the enabled providers. Construction failures are logged and skipped."""
        providers = []
        for provider in self.enabled_providers():
            try:
                providers.append(self.resolve(provider))
            except Exception as e:
                logger.warning(f"Failed to create enabled provider service for {provider}: {e}")
        return providers

    def close(self) -> None:
        """Release the browser of every integration this registry created."""
        for provider, instance in self._instances.items():
            try:
                instance.close()
            except Exception as e:
                logger.warning(f"Error closing {provider} provider service: {e}")
        self._instances.clear()
