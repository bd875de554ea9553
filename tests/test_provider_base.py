from datetime import datetime, timedelta, timezone
from decimal import Decimal

from bet_scraper.models import BetPlacementRequest, BetType, Provider, ProviderBetHistory, SessionState

from conftest import FakeProvider, make_match


def history_item(bet_id, placed_at) -> ProviderBetHistory:
    return ProviderBetHistory(
        provider_bet_id=bet_id,
        description="Arsenal v Chelsea",
        bet_type=BetType.HOME_WIN,
        stake=Decimal("5"),
        price=Decimal("2.10"),
        settlement=None,
        status="Open",
        placed_at=placed_at,
    )


def test_login_moves_to_active() -> None:
    fake = FakeProvider()

    assert fake.state is SessionState.LOGGED_OUT
    assert fake.login("user", "pass") is True
    assert fake.state is SessionState.ACTIVE


def test_login_error_is_reported_as_false() -> None:
    fake = FakeProvider(login_results=[RuntimeError("no such element")])

    assert fake.login("user", "pass") is False
    assert fake.state is SessionState.LOGGED_OUT


def test_login_twice_keeps_the_session() -> None:
    fake = FakeProvider()
    fake.login("user", "pass")

    assert fake.login("user", "pass") is True
    assert fake.login_calls == 1
    assert fake.state is SessionState.ACTIVE


def test_failed_probe_marks_session_expired() -> None:
    fake = FakeProvider(session_results=[False])
    fake.login("user", "pass")

    assert fake.is_logged_in() is False
    assert fake.state is SessionState.EXPIRED
    assert fake.is_logged_in() is False


def test_logout_is_idempotent() -> None:
    fake = FakeProvider()
    fake.login("user", "pass")

    fake.logout()
    fake.logout()

    assert fake.state is SessionState.LOGGED_OUT
    assert fake.is_logged_in() is False


def test_nothing_works_before_login() -> None:
    fake = FakeProvider(matches=[make_match(Provider.BET365, "m1")], balance=Decimal("10"))
    request = BetPlacementRequest("m1", "o1", Decimal("1"), BetType.DRAW, Decimal("3"))

    assert list(fake.scrape_upcoming_matches()) == []
    assert list(fake.scrape_match_odds("m1")) == []
    assert fake.get_account_balance() is None
    assert fake.get_bet_history() == []
    assert fake.place_bet(request).success is False
    assert fake.place_calls == []


def test_scraping_is_lazy_and_requeries() -> None:
    fake = FakeProvider(matches=[make_match(Provider.BET365, "m1")])
    fake.login("user", "pass")

    sequence = fake.scrape_upcoming_matches()
    assert fake.match_calls == 0

    assert len(list(sequence)) == 1
    assert len(list(fake.scrape_upcoming_matches())) == 1
    assert fake.match_calls == 2


def test_balance_after_login() -> None:
    fake = FakeProvider(balance=Decimal("12.50"))
    fake.login("user", "pass")

    assert fake.get_account_balance() == Decimal("12.50")


def test_bet_history_bounds_are_inclusive() -> None:
    base = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    fake = FakeProvider(history=[
        history_item("b1", base - timedelta(days=1)),
        history_item("b2", base),
        history_item("b3", base + timedelta(days=1)),
        history_item("b4", base + timedelta(days=2)),
    ])
    fake.login("user", "pass")

    bets = fake.get_bet_history(base, base + timedelta(days=1))
    assert [b.provider_bet_id for b in bets] == ["b2", "b3"]

    assert len(fake.get_bet_history()) == 4
    naive_from = datetime(2026, 5, 2, 12, 0)
    assert [b.provider_bet_id for b in fake.get_bet_history(from_date=naive_from)] == ["b3", "b4"]
