from datetime import timedelta
from decimal import Decimal

import pytest
from selenium.common.exceptions import NoSuchElementException

from bet_scraper.config import ProviderCredentials, Settings
from bet_scraper.models import (
    BetPlacementResult,
    BetType,
    Match,
    Odds,
    Provider,
    ProviderMatchMapping,
    utcnow,
)
from bet_scraper.providers.base import BettingProvider


def _no_browser(headless):
    raise AssertionError("fake providers never open a browser")


def make_match(provider: Provider, match_id: str, home: str = "Arsenal", away: str = "Chelsea") -> Match:
    return Match(
        home_team=home,
        away_team=away,
        kickoff=utcnow() + timedelta(hours=3),
        league="Premier League",
        provider_mappings=[ProviderMatchMapping(provider=provider, provider_match_id=match_id)],
    )


def make_result_odds(provider: Provider, match_id: str):
    return [
        Odds(provider=provider, bet_type=BetType.HOME_WIN, price=Decimal("2.10"),
             provider_odds_id=f"{match_id}-1", provider_match_id=match_id),
        Odds(provider=provider, bet_type=BetType.DRAW, price=Decimal("3.40"),
             provider_odds_id=f"{match_id}-X", provider_match_id=match_id),
        Odds(provider=provider, bet_type=BetType.AWAY_WIN, price=Decimal("3.75"),
             provider_odds_id=f"{match_id}-2", provider_match_id=match_id),
    ]


class FakeProvider(BettingProvider):
    """Scriptable integration. Lists of results are consumed one call at a time."""

    def __init__(
        self,
        provider: Provider = Provider.BET365,
        *,
        login_results=None,
        session_results=None,
        matches=None,
        match_error=None,
        odds=None,
        odds_error=None,
        place_result=None,
        balance=None,
        history=None,
    ):
        super().__init__(headless=True, driver_factory=_no_browser)
        self.provider = provider
        self.login_results = list(login_results or [])
        self.session_results = list(session_results or [])
        self.matches = list(matches or [])
        self.match_error = match_error
        self.odds = dict(odds or {})
        self.odds_error = odds_error
        self.place_result = place_result
        self.balance = balance
        self.history = list(history or [])

        self.login_calls = 0
        self.logout_calls = 0
        self.match_calls = 0
        self.odds_calls = []
        self.place_calls = []

    # Unexpected defects escape the public methods, like a bug in an integration would
    def scrape_upcoming_matches(self, hours_ahead=48):
        if self.match_error is not None:
            self.match_calls += 1
            raise self.match_error
        return super().scrape_upcoming_matches(hours_ahead)

    def scrape_match_odds(self, provider_match_id):
        if self.odds_error is not None:
            self.odds_calls.append(provider_match_id)
            raise self.odds_error
        return super().scrape_match_odds(provider_match_id)

    def logout(self):
        self.logout_calls += 1
        super().logout()

    def _perform_login(self, username, password):
        self.login_calls += 1
        result = self.login_results.pop(0) if self.login_results else True
        if isinstance(result, Exception):
            raise result
        return result

    def _check_session(self):
        return self.session_results.pop(0) if self.session_results else True

    def _perform_logout(self):
        pass

    def _scrape_upcoming_matches(self, hours_ahead):
        self.match_calls += 1
        yield from self.matches

    def _scrape_match_odds(self, provider_match_id):
        self.odds_calls.append(provider_match_id)
        yield from self.odds.get(provider_match_id, [])

    def _place_bet(self, request):
        self.place_calls.append(request)
        if isinstance(self.place_result, Exception):
            raise self.place_result
        return self.place_result or BetPlacementResult(success=True, provider_bet_id="B-1",
                                                       accepted_stake=request.amount,
                                                       accepted_price=request.expected_price,
                                                       placed_at=utcnow())

    def _read_balance(self):
        return self.balance

    def _fetch_bet_history(self):
        return self.history


def make_settings(enabled=(), credentials=None, headless=True) -> Settings:
    return Settings(
        enabled=list(enabled),
        credentials={
            provider: ProviderCredentials(username, password)
            for provider, (username, password) in (credentials or {}).items()
        },
        headless=headless,
    )


class FakeElement:
    def __init__(self, text="", attrs=None, on_click=None):
        self.text = text
        self.attrs = dict(attrs or {})
        self.on_click = on_click
        self.value = ""
        self.clicks = 0

    def get_attribute(self, name):
        return self.attrs.get(name)

    def click(self):
        self.clicks += 1
        if self.on_click:
            self.on_click()

    def clear(self):
        self.value = ""

    def send_keys(self, value):
        self.value += value


class FakeDriver:
    """Stands in for a Selenium WebDriver.

    ``pages`` maps URLs to HTML returned as page_source; ``elements`` maps
    CSS selectors to the live elements find_element(s) returns.
    """

    def __init__(self):
        self.pages = {}
        self.elements = {}
        self.visited = []
        self.page_source = "<html><body></body></html>"
        self.current_url = None
        self.quit_calls = 0

    def get(self, url):
        self.visited.append(url)
        self.current_url = url
        self.page_source = self.pages.get(url, "<html><body></body></html>")

    def find_elements(self, by, selector):
        return list(self.elements.get(selector, []))

    def find_element(self, by, selector):
        found = self.find_elements(by, selector)
        if not found:
            raise NoSuchElementException(selector)
        return found[0]

    def quit(self):
        self.quit_calls += 1


@pytest.fixture
def fake_driver():
    return FakeDriver()
