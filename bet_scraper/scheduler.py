"""Long-running scrape loop: login, harvest, renew sessions, shut down."""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .config import (
    SCRAPE_CYCLE_INTERVAL_SECONDS,
    SCRAPE_HOURS_AHEAD,
    SCRAPE_MATCH_DELAY_SECONDS,
    SCRAPE_MAX_MATCHES_PER_CYCLE,
    SCRAPE_PARALLEL_PROVIDERS,
    SCRAPE_PROVIDER_DELAY_SECONDS,
    SCRAPE_RECOVERY_INTERVAL_SECONDS,
)
from .models import Match, Odds, Provider
from .providers.base import BettingProvider
from .registry import ProviderRegistry
from .sinks import RecordSink

logger = logging.getLogger(__name__)


@dataclass
class SchedulePolicy:
    """Timing and rate-limit policy for the scrape loop (seconds)."""
    hours_ahead: int = SCRAPE_HOURS_AHEAD
    max_matches_per_cycle: int = SCRAPE_MAX_MATCHES_PER_CYCLE
    provider_delay: float = SCRAPE_PROVIDER_DELAY_SECONDS
    match_delay: float = SCRAPE_MATCH_DELAY_SECONDS
    cycle_interval: float = SCRAPE_CYCLE_INTERVAL_SECONDS
    recovery_interval: float = SCRAPE_RECOVERY_INTERVAL_SECONDS
    parallel_providers: bool = SCRAPE_PARALLEL_PROVIDERS


@dataclass
class CycleReport:
    """What one harvest cycle did."""
    cycle: int
    active: List[Provider] = field(default_factory=list)
    matches: List[Match] = field(default_factory=list)
    odds: List[Odds] = field(default_factory=list)
    failures: Dict[Provider, str] = field(default_factory=dict)
    skipped: bool = False


class ScrapeScheduler:
    """
    Drive every enabled provider through repeated harvest cycles.

    Providers that log in at startup form the session pool. Each cycle
    re-checks their sessions, re-logging in once where needed; a provider
    that cannot be revived sits out that cycle only. ``stop()`` may be
    called from any thread and is honoured between steps.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        sink: Optional[RecordSink] = None,
        policy: Optional[SchedulePolicy] = None,
    ):
        self.registry = registry
        self.sink = sink
        self.policy = policy or SchedulePolicy()
        self.sessions: List[BettingProvider] = []
        self.active: List[BettingProvider] = []
        self.cycle = 0
        self._stop_event = threading.Event()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Request shutdown after the current step."""
        self._stop_event.set()

    def _wait(self, seconds: float) -> bool:
        """Sleep unless stopped. Returns True if a stop was requested."""
        if seconds > 0:
            return self._stop_event.wait(seconds)
        return self.stopped

    # ------------------------------------------------------------------
    # Startup / shutdown
    # ------------------------------------------------------------------

    def _login(self, provider: BettingProvider) -> bool:
        credentials = self.registry.credentials(provider.provider)
        if credentials is None or not credentials.complete:
            logger.warning(f"Credentials not configured for {provider.name}")
            return False
        try:
            return provider.login(credentials.username, credentials.password)
        except Exception:
            logger.exception(f"Error during login to {provider.name}")
            return False

    def start(self) -> bool:
        """Log in to every enabled provider. False if none succeeded."""
        providers = self.registry.list_enabled()
        if not providers:
            logger.warning("No betting providers configured. Scraping service will not function.")
            return False

        logger.info(
            f"Found {len(providers)} enabled providers: {', '.join(p.name for p in providers)}"
        )

        for provider in providers:
            if self.stopped:
                break
            if self._login(provider):
                self.sessions.append(provider)
            else:
                logger.warning(f"Failed to login to {provider.name}, dropping it")

        self.active = list(self.sessions)
        if not self.sessions:
            logger.error("Failed to login to any providers. Stopping scraping service.")
            return False
        return True

    def shutdown(self) -> None:
        """Log out of every provider in the session pool."""
        for provider in self.sessions:
            try:
                provider.logout()
                logger.info(f"Logged out from {provider.name}")
            except Exception as e:
                logger.error(f"Error during logout from {provider.name}: {e}")
        self.sessions = []
        self.active = []
        logger.info("Scraping service stopped.")

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def run(self, max_cycles: Optional[int] = None) -> None:
        """Run until ``stop()`` is called or ``max_cycles`` cycles have completed."""
        logger.info("Scraping service starting...")
        if not self.start():
            return

        try:
            while not self.stopped:
                try:
                    report = self.run_cycle()
                except Exception:
                    logger.exception("Error in scraping cycle")
                    if self._wait(self.policy.recovery_interval):
                        break
                    continue

                if max_cycles is not None and self.cycle >= max_cycles:
                    break

                if report.skipped:
                    logger.warning(
                        f"No active providers available. Retrying in {self.policy.recovery_interval:g}s."
                    )
                    interval = self.policy.recovery_interval
                else:
                    logger.info(
                        f"Scraping cycle {report.cycle} completed. Next cycle in {self.policy.cycle_interval:g}s."
                    )
                    interval = self.policy.cycle_interval

                if self._wait(interval):
                    break
        finally:
            self.shutdown()

    def run_cycle(self) -> CycleReport:
        """Health pass, match harvest, odds harvest and publish."""
        self.cycle += 1
        report = CycleReport(cycle=self.cycle)
        logger.info(f"Starting scraping cycle {self.cycle}")

        self.active = self._health_pass(report)
        report.active = [p.provider for p in self.active]

        if not self.active:
            report.skipped = True
            return report

        if not self.stopped:
            report.matches = self._harvest_matches(self.active, report)
            logger.info(f"Total scraped {len(report.matches)} matches from all providers")

        if not self.stopped:
            report.odds = self._harvest_odds(report.matches, self.active, report)

        self._publish(report)
        return report

    # ------------------------------------------------------------------
    # Cycle steps
    # ------------------------------------------------------------------

    def _health_pass(self, report: CycleReport) -> List[BettingProvider]:
        active = []
        for provider in self.sessions:
            if self.stopped:
                break
            try:
                if provider.is_logged_in():
                    active.append(provider)
                    continue

                logger.warning(f"Session expired for {provider.name}, attempting re-login")
                if self._login(provider):
                    logger.info(f"Successfully re-logged into {provider.name}")
                    active.append(provider)
                else:
                    logger.error(f"Re-login failed for {provider.name}, skipping it this cycle")
                    report.failures[provider.provider] = "re-login failed"
            except Exception as e:
                logger.error(f"Error checking login status for {provider.name}: {e}")
                report.failures[provider.provider] = f"session check error: {e}"
        return active

    def _scrape_matches_from(self, provider: BettingProvider) -> Tuple[List[Match], Optional[str]]:
        try:
            matches = list(provider.scrape_upcoming_matches(self.policy.hours_ahead))
        except Exception as e:
            logger.error(f"Error scraping matches from {provider.name}: {e}")
            return [], f"match harvest error: {e}"

        logger.info(f"Scraped {len(matches)} matches from {provider.name}")
        if not matches:
            logger.warning(f"{provider.name} contributed no matches this cycle")
            return [], "no matches returned"
        return matches, None

    def _harvest_matches(self, providers: List[BettingProvider], report: CycleReport) -> List[Match]:
        if self.policy.parallel_providers and len(providers) > 1:
            # Each provider's calls stay on one worker; sessions are never shared
            with ThreadPoolExecutor(max_workers=len(providers)) as pool:
                results = list(pool.map(self._scrape_matches_from, providers))
        else:
            results = []
            for provider in providers:
                if self.stopped:
                    break
                results.append(self._scrape_matches_from(provider))

        matches = []
        for provider, (found, error) in zip(providers, results):
            if error:
                report.failures[provider.provider] = error
            matches.extend(found)
        return matches

    def _harvest_odds(
        self,
        matches: List[Match],
        providers: List[BettingProvider],
        report: CycleReport,
    ) -> List[Odds]:
        by_provider = {p.provider: p for p in providers}
        odds = []

        for match in matches[:max(self.policy.max_matches_per_cycle, 0)]:
            if self.stopped:
                break

            for mapping in match.provider_mappings:
                provider = by_provider.get(mapping.provider)
                if provider is None:
                    continue
                try:
                    found = list(provider.scrape_match_odds(mapping.provider_match_id))
                    logger.info(
                        f"Scraped {len(found)} odds for match {match.display_name} from {provider.name}"
                    )
                    odds.extend(found)
                except Exception as e:
                    logger.error(
                        f"Error scraping odds for match {match.display_name} from {provider.name}: {e}"
                    )
                    report.failures.setdefault(
                        provider.provider, f"odds harvest error for {mapping.provider_match_id}: {e}"
                    )

                # Rate limiting between provider calls
                if self._wait(self.policy.provider_delay):
                    break

            # Rate limiting between matches
            if self._wait(self.policy.match_delay):
                break

        return odds

    def _publish(self, report: CycleReport) -> None:
        if self.sink is None or not (report.matches or report.odds):
            return
        try:
            self.sink.publish(report.matches, report.odds)
        except Exception:
            logger.exception(f"Failed to publish results of cycle {report.cycle}")
