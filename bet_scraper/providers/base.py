"""
Abstract base class for all betting provider integrations.

Public methods implement the capability contract and the session state
machine; subclasses fill in the ``_perform_*``/``_scrape_*`` hooks that
drive the actual site. Expected site variability (timeouts, missing
elements, rejected credentials) never escapes this class: it is turned
into False, an empty sequence or None.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Iterable, Iterator, List, Optional

from selenium import webdriver
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from webdriver_manager.chrome import ChromeDriverManager

from ..config import BROWSER_USER_AGENT
from ..models import (
    BetPlacementRequest,
    BetPlacementResult,
    Match,
    Odds,
    Provider,
    ProviderBetHistory,
    SessionState,
    ensure_utc,
)

logger = logging.getLogger(__name__)

DriverFactory = Callable[[bool], "webdriver.Remote"]


def create_chrome_driver(headless: bool = True) -> webdriver.Chrome:
    """Create a Chrome WebDriver configured for scraping."""
    options = Options()
    if headless:
        options.add_argument("--headless")
    options.add_argument("--disable-gpu")
    options.add_argument("--no-sandbox")
    options.add_argument("--disable-dev-shm-usage")
    options.add_argument("--window-size=1920,1080")
    options.add_argument(f"user-agent={BROWSER_USER_AGENT}")

    service = Service(ChromeDriverManager().install())
    return webdriver.Chrome(service=service, options=options)


class BettingProvider(ABC):
    """Base class every provider integration inherits from."""

    provider: Provider

    def __init__(self, headless: bool = True, driver_factory: Optional[DriverFactory] = None):
        self.headless = headless
        self._driver_factory = driver_factory or create_chrome_driver
        self._driver = None
        self.state = SessionState.LOGGED_OUT

    @property
    def name(self) -> str:
        return self.provider.value

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name} {self.state.value}>"

    # ------------------------------------------------------------------
    # Browser resource
    # ------------------------------------------------------------------

    def _get_driver(self):
        """Get or create the WebDriver owned by this integration."""
        if self._driver is None:
            try:
                self._driver = self._driver_factory(self.headless)
            except Exception as e:
                logger.error(f"Failed to initialize WebDriver for {self.name}: {e}")
                raise
        return self._driver

    def close(self):
        """Release the browser. Safe to call repeatedly."""
        if self._driver is not None:
            try:
                self._driver.quit()
            except Exception as e:
                logger.warning(f"Error closing browser for {self.name}: {e}")
            finally:
                self._driver = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def login(self, username: str, password: str) -> bool:
        """
        Establish a session. Returns False on any failure, never raises.

        Calling this while already logged in re-affirms the session.
        """
        if self.state is SessionState.ACTIVE and self.is_logged_in():
            logger.debug(f"Already logged in to {self.name}")
            return True

        self.state = SessionState.LOGGING_IN
        try:
            success = self._perform_login(username, password)
        except Exception as e:
            logger.error(f"Error during login process for {self.name}: {e}")
            success = False

        if success:
            self.state = SessionState.ACTIVE
            logger.info(f"Successfully logged in to {self.name}")
        else:
            self.state = SessionState.LOGGED_OUT
            logger.warning(f"Login failed for {self.name}")
        return bool(success)

    def is_logged_in(self) -> bool:
        """Probe the live session. An Active session that fails the probe becomes Expired."""
        if self.state is not SessionState.ACTIVE:
            return False
        try:
            alive = self._check_session()
        except Exception as e:
            logger.warning(f"Session check failed for {self.name}: {e}")
            alive = False
        if not alive:
            self.state = SessionState.EXPIRED
            logger.info(f"Session expired for {self.name}")
        return bool(alive)

    def logout(self) -> None:
        """Best-effort logout. Always leaves the integration LoggedOut."""
        try:
            if self.state is SessionState.ACTIVE:
                self._perform_logout()
                logger.info(f"Successfully logged out from {self.name}")
        except Exception as e:
            logger.error(f"Error during logout from {self.name}: {e}")
        finally:
            self.state = SessionState.LOGGED_OUT
            self.close()

    # ------------------------------------------------------------------
    # Scraping
    # ------------------------------------------------------------------

    def scrape_upcoming_matches(self, hours_ahead: int = 48) -> Iterator[Match]:
        """
        Lazily scrape matches kicking off within the next ``hours_ahead`` hours.

        Each call re-queries the site. A failed page load ends the sequence
        without raising.
        """
        if self.state is not SessionState.ACTIVE:
            logger.warning(f"Not logged in to {self.name}, cannot scrape matches")
            return
        try:
            yield from self._scrape_upcoming_matches(hours_ahead)
        except Exception as e:
            logger.error(f"Error scraping matches from {self.name}: {e}")

    def scrape_match_odds(self, provider_match_id: str) -> Iterator[Odds]:
        """Lazily scrape the odds of one match. Missing markets are simply absent."""
        if self.state is not SessionState.ACTIVE:
            logger.warning(f"Not logged in to {self.name}, cannot scrape odds")
            return
        try:
            yield from self._scrape_match_odds(provider_match_id)
        except Exception as e:
            logger.error(f"Error scraping odds for match {provider_match_id} from {self.name}: {e}")

    # ------------------------------------------------------------------
    # Account
    # ------------------------------------------------------------------

    def place_bet(self, request: BetPlacementRequest) -> BetPlacementResult:
        if not self.is_logged_in():
            return BetPlacementResult.failed(f"Not logged in to {self.name}")
        try:
            return self._place_bet(request)
        except Exception as e:
            logger.error(f"Error placing bet on {self.name}: {e}")
            return BetPlacementResult.failed(str(e) or type(e).__name__)

    def get_account_balance(self):
        """Current balance as a Decimal, or None when it cannot be determined."""
        if self.state is not SessionState.ACTIVE:
            return None
        try:
            return self._read_balance()
        except Exception as e:
            logger.error(f"Error getting account balance from {self.name}: {e}")
            return None

    def get_bet_history(
        self,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
    ) -> List[ProviderBetHistory]:
        """Bets placed between the optional bounds (inclusive)."""
        if self.state is not SessionState.ACTIVE:
            return []
        try:
            history = list(self._fetch_bet_history())
        except Exception as e:
            logger.error(f"Error getting bet history from {self.name}: {e}")
            return []

        if from_date is not None:
            from_date = ensure_utc(from_date)
        if to_date is not None:
            to_date = ensure_utc(to_date)
        return [
            item for item in history
            if (from_date is None or item.placed_at >= from_date)
            and (to_date is None or item.placed_at <= to_date)
        ]

    # ------------------------------------------------------------------
    # Site-specific hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _perform_login(self, username: str, password: str) -> bool:
        """Drive the login form. Return True once the session is confirmed."""

    @abstractmethod
    def _check_session(self) -> bool:
        """Live check that the site still considers us logged in."""

    @abstractmethod
    def _perform_logout(self) -> None:
        pass

    @abstractmethod
    def _scrape_upcoming_matches(self, hours_ahead: int) -> Iterable[Match]:
        pass

    @abstractmethod
    def _scrape_match_odds(self, provider_match_id: str) -> Iterable[Odds]:
        pass

    @abstractmethod
    def _place_bet(self, request: BetPlacementRequest) -> BetPlacementResult:
        pass

    @abstractmethod
    def _read_balance(self):
        pass

    @abstractmethod
    def _fetch_bet_history(self) -> Iterable[ProviderBetHistory]:
        pass
