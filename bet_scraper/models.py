"""Data models for the betting scraper."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Provider(Enum):
    """Betting platforms known to the scraper."""
    BET365 = "Bet365"
    WILLIAM_HILL = "WilliamHill"
    BETFAIR = "Betfair"
    LADBROKES = "Ladbrokes"
    PADDY_POWER = "PaddyPower"
    SKY_BET = "SkyBet"
    BETWAY = "Betway"
    CORAL = "Coral"

    @classmethod
    def parse(cls, name: str) -> Optional["Provider"]:
        """Look up a provider by identifier, ignoring case. None if unknown."""
        if not name:
            return None
        wanted = name.strip().lower()
        for provider in cls:
            if provider.value.lower() == wanted or provider.name.lower() == wanted:
                return provider
        return None

    def __str__(self) -> str:
        return self.value


class BetType(Enum):
    """Fixed catalogue of markets the scraper can price."""
    HOME_WIN = "HomeWin"
    AWAY_WIN = "AwayWin"
    DRAW = "Draw"
    # Goals
    OVER_05_GOALS = "Over05Goals"
    OVER_15_GOALS = "Over15Goals"
    OVER_25_GOALS = "Over25Goals"
    OVER_35_GOALS = "Over35Goals"
    UNDER_05_GOALS = "Under05Goals"
    UNDER_15_GOALS = "Under15Goals"
    UNDER_25_GOALS = "Under25Goals"
    UNDER_35_GOALS = "Under35Goals"
    # Corners
    OVER_65_CORNERS = "Over65Corners"
    OVER_75_CORNERS = "Over75Corners"
    OVER_85_CORNERS = "Over85Corners"
    OVER_95_CORNERS = "Over95Corners"
    UNDER_65_CORNERS = "Under65Corners"
    UNDER_75_CORNERS = "Under75Corners"
    UNDER_85_CORNERS = "Under85Corners"
    UNDER_95_CORNERS = "Under95Corners"
    # Cards
    OVER_15_CARDS = "Over15Cards"
    OVER_25_CARDS = "Over25Cards"
    OVER_35_CARDS = "Over35Cards"
    OVER_45_CARDS = "Over45Cards"
    UNDER_15_CARDS = "Under15Cards"
    UNDER_25_CARDS = "Under25Cards"
    UNDER_35_CARDS = "Under35Cards"
    UNDER_45_CARDS = "Under45Cards"
    # Shots
    OVER_85_SHOTS = "Over85Shots"
    OVER_95_SHOTS = "Over95Shots"
    OVER_105_SHOTS = "Over105Shots"
    OVER_115_SHOTS = "Over115Shots"
    UNDER_85_SHOTS = "Under85Shots"
    UNDER_95_SHOTS = "Under95Shots"
    UNDER_105_SHOTS = "Under105Shots"
    UNDER_115_SHOTS = "Under115Shots"

    @classmethod
    def parse(cls, label: str) -> Optional["BetType"]:
        """Look up a market by value or member name, ignoring case."""
        if not label:
            return None
        wanted = label.strip().lower()
        for bet_type in cls:
            if bet_type.value.lower() == wanted or bet_type.name.lower() == wanted:
                return bet_type
        return None

    @classmethod
    def over_under(cls, stat: str, side: str, line: Decimal) -> Optional["BetType"]:
        """
        Resolve an over/under selection to a catalogue entry.

        Args:
            stat: 'goals', 'corners', 'cards' or 'shots'
            side: 'over' or 'under'
            line: Threshold such as Decimal('2.5')

        Returns:
            Matching BetType, or None if the line is not in the catalogue
        """
        return _OVER_UNDER.get((stat.lower(), side.lower(), Decimal(line).normalize()))


def _build_over_under_index() -> Dict[Tuple[str, str, Decimal], BetType]:
    index = {}
    for bet_type in BetType:
        for side in ("Over", "Under"):
            if not bet_type.value.startswith(side):
                continue
            rest = bet_type.value[len(side):]
            digits = "".join(ch for ch in rest if ch.isdigit())
            stat = rest[len(digits):].lower()
            line = (Decimal(digits) / 10).normalize()
            index[(stat, side.lower(), line)] = bet_type
    return index


_OVER_UNDER = _build_over_under_index()


class SessionState(Enum):
    """Lifecycle of an authenticated session against one provider."""
    LOGGED_OUT = "logged_out"
    LOGGING_IN = "logging_in"
    ACTIVE = "active"
    EXPIRED = "expired"


@dataclass
class ProviderMatchMapping:
    """Links a match to a provider's own identifier for the same fixture."""
    provider: Provider
    provider_match_id: str
    provider_url: Optional[str] = None
    provider_event_name: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    last_updated_at: datetime = field(default_factory=utcnow)

    @property
    def key(self) -> Tuple[Provider, str]:
        return self.provider, self.provider_match_id


@dataclass
class Match:
    """Represents a football match as listed by one or more providers."""
    home_team: str
    away_team: str
    kickoff: datetime
    league: Optional[str] = None
    competition: Optional[str] = None
    scraped_at: datetime = field(default_factory=utcnow)
    provider_mappings: List[ProviderMatchMapping] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        return f"{self.home_team} vs {self.away_team}"


@dataclass(frozen=True)
class Odds:
    """A single price observation. A new price is a new record."""
    provider: Provider
    bet_type: BetType
    price: Decimal
    provider_odds_id: str
    provider_match_id: str = ""
    description: Optional[str] = None
    scraped_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if not isinstance(self.price, Decimal):
            object.__setattr__(self, "price", Decimal(str(self.price)))
        if not self.price.is_finite() or self.price <= 0:
            raise ValueError(f"Odds price must be a finite positive number, got {self.price}")


@dataclass(frozen=True)
class BetPlacementRequest:
    """A wager to submit. ``expected_price`` is informational only."""
    provider_match_id: str
    provider_odds_id: str
    amount: Decimal
    bet_type: BetType
    expected_price: Decimal

    def __post_init__(self):
        for name in ("amount", "expected_price"):
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                object.__setattr__(self, name, Decimal(str(value)))
        if not self.amount.is_finite() or self.amount <= 0:
            raise ValueError(f"Stake must be a finite positive number, got {self.amount}")
        if not self.expected_price.is_finite():
            raise ValueError(f"Expected price must be a finite number, got {self.expected_price}")


@dataclass(frozen=True)
class BetPlacementResult:
    """Outcome of a bet placement. Failures are reported here, never raised."""
    success: bool
    provider_bet_id: Optional[str] = None
    accepted_stake: Optional[Decimal] = None
    accepted_price: Optional[Decimal] = None
    placed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @classmethod
    def failed(cls, message: str) -> "BetPlacementResult":
        return cls(success=False, error_message=message or "Bet placement failed")


@dataclass(frozen=True)
class ProviderBetHistory:
    """A previously placed wager as reported by the provider."""
    provider_bet_id: str
    description: str
    bet_type: Optional[BetType]
    stake: Decimal
    price: Decimal
    settlement: Optional[Decimal]
    status: str
    placed_at: datetime
    settled_at: Optional[datetime] = None
