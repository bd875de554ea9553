"""Bet placement on behalf of an external caller."""
import logging

from .models import BetPlacementRequest, BetPlacementResult, Provider
from .registry import ProviderRegistry

logger = logging.getLogger(__name__)


class BetPlacementService:
    """
    Route a bet placement request to the right provider integration.

    The provider is logged in with its configured credentials when needed.
    Every outcome is a ``BetPlacementResult``; only an unsupported provider
    raises (``ProviderNotSupportedError``).
    """

    def __init__(self, registry: ProviderRegistry):
        self.registry = registry

    def _ensure_session(self, provider: Provider) -> bool:
        integration = self.registry.resolve(provider)
        if integration.is_logged_in():
            return True

        credentials = self.registry.credentials(provider)
        if credentials is None or not credentials.complete:
            logger.warning(f"Credentials not configured for {provider}")
            return False
        return integration.login(credentials.username, credentials.password)

    def place_bet(self, provider: Provider, request: BetPlacementRequest) -> BetPlacementResult:
        integration = self.registry.resolve(provider)

        try:
            if not self._ensure_session(provider):
                return BetPlacementResult.failed(f"Not logged in to {provider}")
            result = integration.place_bet(request)
        except Exception as e:
            logger.exception(f"Unexpected error placing bet on {provider}")
            return BetPlacementResult.failed(str(e) or type(e).__name__)

        if result.success:
            logger.info(
                f"Placed {request.bet_type.value} bet of {request.amount} on {provider} "
                f"(bet id {result.provider_bet_id})"
            )
        else:
            logger.warning(f"Bet placement on {provider} failed: {result.error_message}")
        return result
