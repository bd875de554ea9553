"""Bet365 integration driven through Selenium."""
import logging
import re
from datetime import date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from typing import Iterator, Optional

from bs4 import BeautifulSoup
from selenium.common.exceptions import TimeoutException
from selenium.webdriver.common.by import By
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait

from ..config import (
    BET365_BASE_URL,
    BET365_FOOTBALL_COUPON_PATH,
    BET365_HISTORY_PATH,
    BET365_MATCH_PATH,
    BROWSER_CONFIRM_TIMEOUT_SECONDS,
    BROWSER_PAGE_TIMEOUT_SECONDS,
)
from ..models import (
    BetPlacementRequest,
    BetPlacementResult,
    BetType,
    Match,
    Odds,
    Provider,
    ProviderBetHistory,
    ProviderMatchMapping,
    ensure_utc,
    utcnow,
)
from .base import BettingProvider

logger = logging.getLogger(__name__)

# Account
LOGIN_BUTTON = "[data-ui='LoginButton']"
USERNAME_INPUT = "[data-ui='UsernameInput']"
PASSWORD_INPUT = "[data-ui='PasswordInput']"
LOGIN_SUBMIT = "[data-ui='LoginSubmitButton']"
ACCOUNT_BALANCE = "[data-ui='AccountBalance']"
LOGOUT_BUTTON = "[data-ui='LogoutButton']"

# Match coupon
COUPON_ROW = ".sl-CouponParticipantWithBookCloses"
COUPON_TEAM_NAME = ".sl-CouponParticipantWithBookCloses_Name"
COUPON_KICKOFF = ".sl-CouponParticipantWithBookCloses_BookCloses"
COMPETITION_HEADER_CLASS = "sl-CompetitionHeader_Name"

# Match page
MARKET_HEADER = ".gl-MarketColumnHeader"
RESULT_PARTICIPANT = ".gl-Participant_General"
RESULT_PARTICIPANT_ODDS = ".gl-Participant_Odds"
MARKET_GROUP = ".gl-MarketGroup"
MARKET_GROUP_TITLE = ".gl-MarketGroupButton_Text"
LINE_PARTICIPANT = ".gl-ParticipantCentered"
LINE_PARTICIPANT_NAME = ".gl-ParticipantCentered_Name"
LINE_PARTICIPANT_ODDS = ".gl-ParticipantCentered_Odds"

# Bet slip
STAKE_INPUT = ".bss-StakeBox_StakeValueInput"
PLACE_BET_BUTTON = ".bss-PlaceBetButton"
RECEIPT = ".bss-ReceiptContent"
RECEIPT_BET_ID = "[data-receipt-bet-id]"
RECEIPT_ODDS = ".bss-ReceiptContent_Odds"

# Bet history
HISTORY_CONTAINER = ".mbs-BetHistoryContainer"
HISTORY_ITEM = ".mbs-BetHistoryItem"

RESULT_MARKETS = (BetType.HOME_WIN, BetType.DRAW, BetType.AWAY_WIN)

# Full-match totals only, e.g. "Match Goals" or "Corners Over/Under"
FULL_MATCH_TOTAL_TITLE = re.compile(
    r"(?:match |total )?(goals|corners|cards|bookings|shots)(?: over/under)?",
    re.IGNORECASE,
)
MARKET_STATS = {
    "goals": "goals",
    "corners": "corners",
    "cards": "cards",
    "bookings": "cards",
    "shots": "shots",
}

MONTHS = ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"]
DAYS = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]

TWO_PLACES = Decimal("0.01")


def parse_price(text: Optional[str]) -> Optional[Decimal]:
    """
    Convert displayed odds to a decimal price.

    Args:
        text: Odds string like '3/1', '11/10', 'EVS', or decimal like '2.50'

    Returns:
        Positive Decimal rounded to two places, or None if parsing fails
    """
    if not text:
        return None

    text = text.strip().upper()

    if text in ("SP", "-", ""):
        return None
    if text in ("EVS", "EVENS", "EVN"):
        return Decimal("2.00")

    try:
        if "/" in text:
            num, den = text.split("/")
            price = Decimal(num) / Decimal(den) + 1
        else:
            price = Decimal(text)
    except (ValueError, ArithmeticError):
        return None

    if not price.is_finite() or price <= 0:
        return None
    return price.quantize(TWO_PLACES)


def parse_amount(text: Optional[str]) -> Optional[Decimal]:
    """Parse a money amount such as '£1,234.50'."""
    if not text:
        return None
    cleaned = re.sub(r"[^\d.\-]", "", text)
    if not cleaned:
        return None
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


def parse_kickoff(text: Optional[str], now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Parse a kickoff label from the coupon.

    Args:
        text: Label like '2025-10-19T15:00:00Z', 'Today 15:00', 'Tomorrow 15:00',
            'Sat 15:00' or '19 Oct 15:00'
        now: Reference time (UTC)

    Returns:
        Timezone-aware datetime or None
    """
    if not text:
        return None

    text = text.strip()
    now = ensure_utc(now or utcnow())

    try:
        return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass

    time_match = re.search(r"(\d{1,2}):(\d{2})", text)
    if not time_match:
        return None

    hour, minute = int(time_match.group(1)), int(time_match.group(2))
    if hour > 23 or minute > 59:
        return None

    lower = text.lower()
    date_match = re.search(r"(\d{1,2})\s+([a-z]{3})", lower)

    if "today" in lower:
        match_date = now.date()
    elif "tomorrow" in lower:
        match_date = (now + timedelta(days=1)).date()
    elif date_match and date_match.group(2) in MONTHS:
        month = MONTHS.index(date_match.group(2)) + 1
        try:
            match_date = date(now.year, month, int(date_match.group(1)))
        except ValueError:
            return None
        # Fixtures listed in January for a December date belong to next year
        if match_date < now.date() - timedelta(days=180):
            match_date = match_date.replace(year=now.year + 1)
    else:
        for i, day in enumerate(DAYS):
            if day in lower:
                days_ahead = (i - now.weekday()) % 7
                if days_ahead == 0 and hour < now.hour:
                    days_ahead = 7  # Next week
                match_date = (now + timedelta(days=days_ahead)).date()
                break
        else:
            # A bare time is today's fixture; anything else is an unknown format
            if not re.fullmatch(r"\d{1,2}:\d{2}", text):
                return None
            match_date = now.date()

    return datetime.combine(match_date, time(hour, minute), tzinfo=now.tzinfo)


def _text(element) -> str:
    return element.get_text(strip=True) if element is not None else ""


class Bet365Provider(BettingProvider):
    """Bet365 football coupon, match pages, bet slip and history."""

    provider = Provider.BET365

    def __init__(
        self,
        headless: bool = True,
        driver_factory=None,
        page_timeout: float = BROWSER_PAGE_TIMEOUT_SECONDS,
        confirm_timeout: float = BROWSER_CONFIRM_TIMEOUT_SECONDS,
    ):
        super().__init__(headless=headless, driver_factory=driver_factory)
        self.page_timeout = page_timeout
        self.confirm_timeout = confirm_timeout

    def match_url(self, provider_match_id: str) -> str:
        return BET365_BASE_URL + BET365_MATCH_PATH.format(match_id=provider_match_id)

    def _wait_for(self, selector: str, timeout: float):
        return WebDriverWait(self._get_driver(), timeout).until(
            EC.presence_of_element_located((By.CSS_SELECTOR, selector))
        )

    def _open(self, url: str, ready_selector: str):
        """Navigate and wait for the page to render. Returns parsed HTML."""
        driver = self._get_driver()
        driver.get(url)
        self._wait_for(ready_selector, self.page_timeout)
        return BeautifulSoup(driver.page_source, "lxml")

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def _perform_login(self, username: str, password: str) -> bool:
        driver = self._get_driver()
        driver.get(BET365_BASE_URL)

        try:
            self._wait_for(LOGIN_BUTTON, self.page_timeout).click()
        except TimeoutException:
            logger.warning(f"Login button not found on {self.name}")
            return False

        username_input = driver.find_element(By.CSS_SELECTOR, USERNAME_INPUT)
        username_input.clear()
        username_input.send_keys(username)
        password_input = driver.find_element(By.CSS_SELECTOR, PASSWORD_INPUT)
        password_input.clear()
        password_input.send_keys(password)
        driver.find_element(By.CSS_SELECTOR, LOGIN_SUBMIT).click()

        # The balance only renders for an authenticated session
        try:
            self._wait_for(ACCOUNT_BALANCE, self.confirm_timeout)
        except TimeoutException:
            logger.warning(f"Login failed or timed out for {self.name}")
            return False
        return True

    def _check_session(self) -> bool:
        if self._driver is None:
            return False
        return bool(self._driver.find_elements(By.CSS_SELECTOR, ACCOUNT_BALANCE))

    def _perform_logout(self) -> None:
        if self._driver is None:
            return
        buttons = self._driver.find_elements(By.CSS_SELECTOR, LOGOUT_BUTTON)
        if buttons:
            buttons[0].click()
        else:
            logger.debug(f"No logout button on {self.name}, session already gone")

    # ------------------------------------------------------------------
    # Matches
    # ------------------------------------------------------------------

    def _scrape_upcoming_matches(self, hours_ahead: int) -> Iterator[Match]:
        url = BET365_BASE_URL + BET365_FOOTBALL_COUPON_PATH
        logger.info(f"Scraping {url}")

        try:
            soup = self._open(url, COUPON_ROW)
        except TimeoutException:
            logger.error(f"Timeout loading {url}")
            return

        now = utcnow()
        cutoff = now + timedelta(hours=hours_ahead)
        seen = set()
        count = 0

        for row in soup.select(COUPON_ROW):
            try:
                match = self._parse_match_row(row, now)
            except Exception as e:
                logger.warning(f"Error parsing match row on {self.name}: {e}")
                continue

            if match is None:
                continue
            if not now <= match.kickoff <= cutoff:
                continue

            mapping = match.provider_mappings[0]
            if mapping.provider_match_id in seen:
                continue
            seen.add(mapping.provider_match_id)

            count += 1
            yield match

        logger.info(f"Scraped {count} matches from {self.name}")

    def _parse_match_row(self, row, now: datetime) -> Optional[Match]:
        """
        Parse a single coupon row.

        Args:
            row: BeautifulSoup element for one fixture
            now: Reference time for relative kickoff labels

        Returns:
            Match with one mapping for this provider, or None if incomplete
        """
        event_id = (row.get("data-event-id") or "").strip()
        if not event_id:
            logger.debug(f"Skipping {self.name} row without event id")
            return None

        teams = row.select(COUPON_TEAM_NAME)
        if len(teams) < 2:
            return None
        home_team = _text(teams[0])
        away_team = _text(teams[-1])
        if not home_team or not away_team:
            return None

        kickoff = parse_kickoff(_text(row.select_one(COUPON_KICKOFF)), now)
        if kickoff is None:
            return None

        header = row.find_previous(class_=COMPETITION_HEADER_CLASS)
        league = _text(header) or None

        scraped_at = utcnow()
        return Match(
            home_team=home_team,
            away_team=away_team,
            kickoff=kickoff,
            league=league,
            scraped_at=scraped_at,
            provider_mappings=[
                ProviderMatchMapping(
                    provider=self.provider,
                    provider_match_id=event_id,
                    provider_url=self.match_url(event_id),
                    provider_event_name=f"{home_team} v {away_team}",
                    created_at=scraped_at,
                    last_updated_at=scraped_at,
                )
            ],
        )

    # ------------------------------------------------------------------
    # Odds
    # ------------------------------------------------------------------

    def _scrape_match_odds(self, provider_match_id: str) -> Iterator[Odds]:
        url = self.match_url(provider_match_id)
        try:
            soup = self._open(url, MARKET_HEADER)
        except TimeoutException:
            logger.error(f"Timeout loading odds page {url}")
            return

        # One price per market per match
        seen = set()

        participants = soup.select(RESULT_PARTICIPANT)[:len(RESULT_MARKETS)]
        for bet_type, cell in zip(RESULT_MARKETS, participants):
            odds_id = (cell.get("data-odds-id") or "").strip()
            if not odds_id:
                logger.debug(f"Skipping {bet_type.value} on {self.name}: selection has no odds id")
                continue
            odds_cell = cell.select_one(RESULT_PARTICIPANT_ODDS)
            price = parse_price(_text(odds_cell if odds_cell is not None else cell))
            if price is None:
                continue
            seen.add(bet_type)
            yield Odds(
                provider=self.provider,
                bet_type=bet_type,
                price=price,
                provider_odds_id=odds_id,
                provider_match_id=provider_match_id,
                description=bet_type.value,
            )

        for group in soup.select(MARKET_GROUP):
            yield from self._parse_line_market(group, provider_match_id, seen)

    def _parse_line_market(self, group, provider_match_id: str, seen: set) -> Iterator[Odds]:
        """Yield catalogue over/under selections from one full-match total group."""
        title = _text(group.select_one(MARKET_GROUP_TITLE))
        title_match = FULL_MATCH_TOTAL_TITLE.fullmatch(title)
        if title_match is None:
            return
        stat = MARKET_STATS[title_match.group(1).lower()]

        for cell in group.select(LINE_PARTICIPANT):
            try:
                odds_id = (cell.get("data-odds-id") or "").strip()
                label = _text(cell.select_one(LINE_PARTICIPANT_NAME))
                line_match = re.match(r"(over|under)\s+(\d+(?:\.\d+)?)", label, re.IGNORECASE)
                if not odds_id or not line_match:
                    continue
                bet_type = BetType.over_under(stat, line_match.group(1), Decimal(line_match.group(2)))
                price = parse_price(_text(cell.select_one(LINE_PARTICIPANT_ODDS)))
                if bet_type is None or price is None or bet_type in seen:
                    continue
                seen.add(bet_type)
                yield Odds(
                    provider=self.provider,
                    bet_type=bet_type,
                    price=price,
                    provider_odds_id=odds_id,
                    provider_match_id=provider_match_id,
                    description=f"{title} {label}",
                )
            except (ValueError, ArithmeticError) as e:
                logger.warning(f"Error parsing {title} selection on {self.name}: {e}")
                continue

    # ------------------------------------------------------------------
    # Betting
    # ------------------------------------------------------------------

    def _place_bet(self, request: BetPlacementRequest) -> BetPlacementResult:
        driver = self._get_driver()
        url = self.match_url(request.provider_match_id)
        driver.get(url)

        try:
            self._wait_for(MARKET_HEADER, self.page_timeout)
        except TimeoutException:
            return BetPlacementResult.failed(f"Match {request.provider_match_id} not found on {self.name}")

        selections = driver.find_elements(
            By.CSS_SELECTOR, f"[data-odds-id='{request.provider_odds_id}']"
        )
        if not selections:
            return BetPlacementResult.failed("Odds element not found")
        selections[0].click()

        try:
            stake_input = self._wait_for(STAKE_INPUT, self.confirm_timeout)
        except TimeoutException:
            return BetPlacementResult.failed("Bet slip did not open")
        stake_input.clear()
        stake_input.send_keys(str(request.amount))
        driver.find_element(By.CSS_SELECTOR, PLACE_BET_BUTTON).click()

        try:
            self._wait_for(RECEIPT, self.confirm_timeout)
        except TimeoutException:
            return BetPlacementResult.failed("Bet placement confirmation not received")

        bet_ids = driver.find_elements(By.CSS_SELECTOR, RECEIPT_BET_ID)
        provider_bet_id = bet_ids[0].get_attribute("data-receipt-bet-id") if bet_ids else None

        receipt_odds = driver.find_elements(By.CSS_SELECTOR, RECEIPT_ODDS)
        accepted_price = parse_price(receipt_odds[0].text) if receipt_odds else None
        if accepted_price is None:
            accepted_price = request.expected_price
        elif accepted_price != request.expected_price:
            logger.warning(
                f"Price moved on {self.name}: expected {request.expected_price}, accepted {accepted_price}"
            )

        logger.info(f"Bet placed successfully on {self.name} (bet id {provider_bet_id})")
        return BetPlacementResult(
            success=True,
            provider_bet_id=provider_bet_id,
            accepted_stake=request.amount,
            accepted_price=accepted_price,
            placed_at=utcnow(),
        )

    def _read_balance(self) -> Optional[Decimal]:
        elements = self._get_driver().find_elements(By.CSS_SELECTOR, ACCOUNT_BALANCE)
        if not elements:
            return None
        return parse_amount(elements[0].text)

    def _fetch_bet_history(self) -> Iterator[ProviderBetHistory]:
        url = BET365_BASE_URL + BET365_HISTORY_PATH
        try:
            soup = self._open(url, HISTORY_CONTAINER)
        except TimeoutException:
            logger.error(f"Timeout loading bet history from {self.name}")
            return

        for item in soup.select(HISTORY_ITEM):
            try:
                entry = self._parse_history_item(item)
            except (ValueError, ArithmeticError) as e:
                logger.warning(f"Error parsing bet history row on {self.name}: {e}")
                continue
            if entry is not None:
                yield entry

    def _parse_history_item(self, item) -> Optional[ProviderBetHistory]:
        bet_id = (item.get("data-bet-id") or "").strip()
        placed = item.get("data-placed")
        stake = parse_amount(_text(item.select_one(".mbs-BetHistoryItem_Stake")))
        price = parse_price(_text(item.select_one(".mbs-BetHistoryItem_Odds")))
        if not bet_id or not placed or stake is None or price is None:
            return None

        settled = item.get("data-settled")
        return ProviderBetHistory(
            provider_bet_id=bet_id,
            description=_text(item.select_one(".mbs-BetHistoryItem_Description")),
            bet_type=BetType.parse(_text(item.select_one(".mbs-BetHistoryItem_Market"))),
            stake=stake,
            price=price,
            settlement=parse_amount(_text(item.select_one(".mbs-BetHistoryItem_Return"))),
            status=_text(item.select_one(".mbs-BetHistoryItem_Status")),
            placed_at=ensure_utc(datetime.fromisoformat(placed.replace("Z", "+00:00"))),
            settled_at=ensure_utc(datetime.fromisoformat(settled.replace("Z", "+00:00"))) if settled else None,
        )
