import threading

from bet_scraper.models import Provider
from bet_scraper.registry import ProviderRegistry
from bet_scraper.scheduler import SchedulePolicy, ScrapeScheduler
from bet_scraper.sinks import MemorySink

from conftest import FakeProvider, make_match, make_result_odds, make_settings

A, B, C = Provider.BET365, Provider.WILLIAM_HILL, Provider.BETFAIR


def no_delays(**overrides) -> SchedulePolicy:
    values = dict(
        hours_ahead=48,
        max_matches_per_cycle=5,
        provider_delay=0,
        match_delay=0,
        cycle_interval=0,
        recovery_interval=0,
        parallel_providers=False,
    )
    values.update(overrides)
    return SchedulePolicy(**values)


def build(*fakes, sink=None, policy=None, enabled=None):
    settings = make_settings(
        enabled=[f.provider.value for f in fakes] if enabled is None else enabled,
        credentials={f.provider: ("user", "pass") for f in fakes},
    )
    registry = ProviderRegistry(settings, factories={f.provider: (lambda s, f=f: f) for f in fakes})
    return ScrapeScheduler(registry, sink, policy or no_delays())


def test_failed_login_does_not_block_other_providers() -> None:
    a = FakeProvider(A, login_results=[False])
    b = FakeProvider(B)
    c = FakeProvider(C, login_results=[RuntimeError("browser crashed")])
    d = FakeProvider(Provider.LADBROKES)
    scheduler = build(a, b, c, d)

    assert scheduler.start() is True

    assert [p.provider for p in scheduler.sessions] == [B, Provider.LADBROKES]


def test_start_without_enabled_providers_returns_false() -> None:
    registry = ProviderRegistry(make_settings(), factories={A: lambda s: FakeProvider(A)})
    scheduler = ScrapeScheduler(registry, MemorySink(), no_delays())

    assert scheduler.start() is False
    scheduler.run()
    assert scheduler.cycle == 0


def test_run_stops_when_no_provider_logs_in() -> None:
    a = FakeProvider(A, login_results=[False])
    sink = MemorySink()
    scheduler = build(a, sink=sink)

    scheduler.run()

    assert scheduler.cycle == 0
    assert a.match_calls == 0
    assert sink.batches == []


def test_one_provider_failing_harvest_does_not_reduce_others() -> None:
    a = FakeProvider(A, match_error=RuntimeError("selector exploded"))
    b = FakeProvider(B, matches=[make_match(B, f"b{i}") for i in range(3)])
    scheduler = build(a, b)
    scheduler.start()

    report = scheduler.run_cycle()

    assert len(report.matches) == 3
    assert all(m.provider_mappings[0].provider is B for m in report.matches)
    assert "selector exploded" in report.failures[A]
    assert B not in report.failures


def test_empty_harvest_is_recorded() -> None:
    a = FakeProvider(A, matches=[])
    b = FakeProvider(B, matches=[make_match(B, "b1")])
    scheduler = build(a, b)
    scheduler.start()

    report = scheduler.run_cycle()

    assert len(report.matches) == 1
    assert report.failures[A] == "no matches returned"


def test_expired_session_gets_exactly_one_relogin() -> None:
    b = FakeProvider(B, session_results=[False, True], matches=[make_match(B, "b1")])
    scheduler = build(b)
    scheduler.start()

    report = scheduler.run_cycle()

    assert b.login_calls == 2
    assert report.active == [B]
    assert len(report.matches) == 1


def test_failed_relogin_skips_cycle_but_retries_next_cycle() -> None:
    a = FakeProvider(A, login_results=[True, False, True], session_results=[False],
                     matches=[make_match(A, "a1")])
    b = FakeProvider(B, matches=[make_match(B, "b1")])
    scheduler = build(a, b)
    scheduler.start()

    first = scheduler.run_cycle()
    assert first.active == [B]
    assert first.failures[A] == "re-login failed"
    assert a.match_calls == 0
    assert [m.provider_mappings[0].provider for m in first.matches] == [B]

    second = scheduler.run_cycle()
    assert second.active == [A, B]
    assert a.login_calls == 3
    assert len(second.matches) == 2


def test_no_active_providers_skips_harvest() -> None:
    a = FakeProvider(A, login_results=[True, False], session_results=[False], matches=[make_match(A, "a1")])
    scheduler = build(a)
    scheduler.start()

    report = scheduler.run_cycle()

    assert report.skipped is True
    assert report.active == []
    assert a.match_calls == 0


def test_all_providers_down_waits_recovery_interval_not_cycle_interval() -> None:
    a = FakeProvider(A, login_results=[True] + [False] * 10, session_results=[False])
    scheduler = build(a, policy=no_delays(cycle_interval=3600, recovery_interval=0.01))

    waited = []
    real_wait = scheduler._wait

    def recording_wait(seconds):
        waited.append(seconds)
        if len(waited) >= 3:
            scheduler.stop()
        return real_wait(seconds)

    scheduler._wait = recording_wait
    scheduler.run()

    assert waited == [0.01, 0.01, 0.01]
    assert a.match_calls == 0


def test_single_provider_cycle_end_to_end() -> None:
    bet365 = FakeProvider(
        A,
        matches=[make_match(A, "m1"), make_match(A, "m2", "Leeds", "Fulham")],
        odds={"m1": make_result_odds(A, "m1"), "m2": make_result_odds(A, "m2")},
    )
    sink = MemorySink()
    scheduler = build(bet365, sink=sink, enabled=["Bet365"])

    scheduler.run(max_cycles=1)

    assert len(sink.batches) == 1
    assert len(sink.matches) == 2
    assert len(sink.odds) == 6
    assert all(o.price > 0 for o in sink.odds)
    assert {o.provider_match_id for o in sink.odds} == {"m1", "m2"}
    assert bet365.logout_calls == 1
    assert scheduler.sessions == []


def test_odds_harvest_is_capped_per_cycle() -> None:
    a = FakeProvider(
        A,
        matches=[make_match(A, f"m{i}") for i in range(4)],
        odds={f"m{i}": make_result_odds(A, f"m{i}") for i in range(4)},
    )
    scheduler = build(a, policy=no_delays(max_matches_per_cycle=2))
    scheduler.start()

    report = scheduler.run_cycle()

    assert len(report.matches) == 4
    assert a.odds_calls == ["m0", "m1"]
    assert len(report.odds) == 6


def test_odds_only_requested_from_the_listing_provider() -> None:
    a = FakeProvider(A, matches=[make_match(A, "a1")], odds={"a1": make_result_odds(A, "a1")})
    b = FakeProvider(B, matches=[make_match(B, "b1")], odds_error=RuntimeError("odds page crashed"))
    scheduler = build(a, b)
    scheduler.start()

    report = scheduler.run_cycle()

    assert a.odds_calls == ["a1"]
    assert b.odds_calls == ["b1"]
    assert len(report.odds) == 3
    assert "odds page crashed" in report.failures[B]


def test_parallel_harvest_keeps_provider_order() -> None:
    a = FakeProvider(A, matches=[make_match(A, "a1"), make_match(A, "a2")])
    b = FakeProvider(B, matches=[make_match(B, "b1")])
    c = FakeProvider(C, match_error=RuntimeError("boom"))
    scheduler = build(a, b, c, policy=no_delays(parallel_providers=True, max_matches_per_cycle=0))
    scheduler.start()

    report = scheduler.run_cycle()

    assert [m.provider_mappings[0].provider_match_id for m in report.matches] == ["a1", "a2", "b1"]
    assert C in report.failures


def test_sink_failure_does_not_stop_the_loop() -> None:
    class BrokenSink(MemorySink):
        def publish(self, matches, odds):
            super().publish(matches, odds)
            raise IOError("disk full")

    a = FakeProvider(A, matches=[make_match(A, "a1")])
    sink = BrokenSink()
    scheduler = build(a, sink=sink)

    scheduler.run(max_cycles=2)

    assert scheduler.cycle == 2
    assert len(sink.batches) == 2
    assert a.logout_calls == 1


def test_stop_during_cycle_finishes_step_and_logs_out() -> None:
    class StoppingSink(MemorySink):
        def publish(self, matches, odds):
            super().publish(matches, odds)
            scheduler.stop()

    a = FakeProvider(A, matches=[make_match(A, "a1")], odds={"a1": make_result_odds(A, "a1")})
    sink = StoppingSink()
    scheduler = build(a, sink=sink, policy=no_delays(cycle_interval=3600))

    scheduler.run()

    assert scheduler.cycle == 1
    assert len(sink.odds) == 3
    assert a.logout_calls == 1


def test_stop_interrupts_inter_cycle_wait() -> None:
    published = threading.Event()

    class SignallingSink(MemorySink):
        def publish(self, matches, odds):
            super().publish(matches, odds)
            published.set()

    a = FakeProvider(A, matches=[make_match(A, "a1")])
    scheduler = build(a, sink=SignallingSink(), policy=no_delays(cycle_interval=3600))

    worker = threading.Thread(target=scheduler.run, daemon=True)
    worker.start()
    assert published.wait(timeout=5)

    scheduler.stop()
    worker.join(timeout=5)

    assert not worker.is_alive()
    assert a.logout_calls == 1


def test_stop_between_matches_skips_remaining_odds() -> None:
    a = FakeProvider(
        A,
        matches=[make_match(A, f"m{i}") for i in range(3)],
        odds={f"m{i}": make_result_odds(A, f"m{i}") for i in range(3)},
    )
    scheduler = build(a)
    scheduler.start()

    original = a._scrape_match_odds

    def stop_after_first(match_id):
        yield from original(match_id)
        scheduler.stop()

    a._scrape_match_odds = stop_after_first
    report = scheduler.run_cycle()

    assert a.odds_calls == ["m0"]
    assert len(report.odds) == 3
