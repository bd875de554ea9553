"""CLI entry point for the betting scraper."""
import logging
import signal
import sys
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .betting import BetPlacementService
from .config import EXPORT_DIR, load_settings
from .models import BetPlacementRequest, BetType, Provider
from .registry import ProviderNotSupportedError, ProviderRegistry
from .scheduler import SchedulePolicy, ScrapeScheduler
from .sinks import JsonExportSink, MemorySink

console = Console()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    handlers=[RichHandler(console=console, rich_tracebacks=True)]
)
logger = logging.getLogger(__name__)


def _parse_provider(value: str) -> Provider:
    provider = Provider.parse(value)
    if provider is None:
        choices = ", ".join(p.value for p in Provider)
        raise click.BadParameter(f"Unknown provider {value!r}. Choose from: {choices}")
    return provider


def _parse_decimal(value: str, name: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise click.BadParameter(f"{name} must be a number, got {value!r}")


def _build_registry(ctx, headless=None) -> ProviderRegistry:
    settings = load_settings(ctx.obj.get("config"))
    if headless is not None:
        settings.headless = headless
    return ProviderRegistry(settings)


@contextmanager
def provider_session(ctx, provider_name: str, headless: bool = True):
    """Log in to one provider for a single command, then log out."""
    provider = _parse_provider(provider_name)
    registry = _build_registry(ctx, headless)

    try:
        integration = registry.resolve(provider)
    except ProviderNotSupportedError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    credentials = registry.credentials(provider)
    if credentials is None or not credentials.complete:
        console.print(f"[red]Error: credentials for {provider} are not configured.[/red]")
        sys.exit(1)

    try:
        console.print(f"[bold]Logging in to {provider}...[/bold]")
        if not integration.login(credentials.username, credentials.password):
            console.print(f"[red]Login to {provider} failed. See log for details.[/red]")
            sys.exit(1)
        yield integration
    finally:
        integration.logout()
        registry.close()


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="JSON file with a BettingProviders section")
@click.pass_context
def cli(ctx, debug, config_path):
    """Football betting provider scraper CLI."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = config_path
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)


@cli.command()
@click.option("--once", is_flag=True, help="Run a single harvest cycle and exit")
@click.option("--export-dir", type=click.Path(file_okay=False), default=None,
              help=f"Write each cycle as JSON here (default: {EXPORT_DIR})")
@click.option("--no-export", is_flag=True, help="Keep results in memory only")
@click.option("--no-headless", is_flag=True, help="Show browser windows")
@click.pass_context
def run(ctx, once, export_dir, no_export, no_headless):
    """Log in to enabled providers and harvest matches and odds until stopped."""
    registry = _build_registry(ctx, headless=not no_headless)
    sink = MemorySink() if no_export else JsonExportSink(export_dir or EXPORT_DIR)
    scheduler = ScrapeScheduler(registry, sink, SchedulePolicy())

    def request_stop(signum, frame):
        console.print("\n[yellow]Stopping after the current step...[/yellow]")
        scheduler.stop()

    signal.signal(signal.SIGINT, request_stop)
    signal.signal(signal.SIGTERM, request_stop)

    console.print("[bold]Starting scraping service...[/bold]")
    try:
        scheduler.run(max_cycles=1 if once else None)
    finally:
        registry.close()

    console.print(f"\n[bold green]Stopped after {scheduler.cycle} cycle(s).[/bold green]")


@cli.command("providers")
@click.pass_context
def list_providers(ctx):
    """List providers and whether they are implemented, available and enabled."""
    registry = _build_registry(ctx)
    enabled = set(registry.enabled_providers())
    implemented = set(registry.implemented)

    table = Table(title="Betting Providers")
    table.add_column("Provider", style="cyan")
    table.add_column("Implemented", justify="center")
    table.add_column("Credentials", justify="center")
    table.add_column("Enabled", justify="center")

    def mark(flag):
        return "[green]yes[/green]" if flag else "[dim]no[/dim]"

    for provider in Provider:
        table.add_row(
            provider.value,
            mark(provider in implemented),
            mark(registry.is_available(provider)),
            mark(provider in enabled),
        )

    console.print(table)


@cli.command("scrape-matches")
@click.argument("provider")
@click.option("--hours", "-h", default=48, help="Hours ahead to look for fixtures")
@click.option("--no-headless", is_flag=True, help="Show browser window")
@click.pass_context
def scrape_matches(ctx, provider, hours, no_headless):
    """Scrape upcoming matches from one provider."""
    with provider_session(ctx, provider, headless=not no_headless) as integration:
        matches = list(integration.scrape_upcoming_matches(hours))

    if not matches:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(title=f"Upcoming Matches ({integration.name})")
    table.add_column("Match ID", style="dim")
    table.add_column("Kickoff")
    table.add_column("Home Team", style="cyan")
    table.add_column("Away Team", style="cyan")
    table.add_column("League")

    for match in matches:
        table.add_row(
            match.provider_mappings[0].provider_match_id,
            match.kickoff.strftime("%a %d %b %H:%M"),
            match.home_team[:25],
            match.away_team[:25],
            match.league or "-",
        )

    console.print(table)


@cli.command("scrape-odds")
@click.argument("provider")
@click.argument("match_id")
@click.option("--no-headless", is_flag=True, help="Show browser window")
@click.pass_context
def scrape_odds(ctx, provider, match_id, no_headless):
    """Scrape the odds of one match."""
    with provider_session(ctx, provider, headless=not no_headless) as integration:
        odds = list(integration.scrape_match_odds(match_id))

    if not odds:
        console.print("[yellow]No odds found.[/yellow]")
        return

    table = Table(title=f"Odds for {match_id} ({integration.name})")
    table.add_column("Market", style="cyan")
    table.add_column("Price", justify="right", style="green")
    table.add_column("Odds ID", style="dim")

    for item in odds:
        table.add_row(item.bet_type.value, f"{item.price:.2f}", item.provider_odds_id)

    console.print(table)


@cli.command("balance")
@click.argument("provider")
@click.pass_context
def balance(ctx, provider):
    """Show the account balance at one provider."""
    with provider_session(ctx, provider) as integration:
        amount = integration.get_account_balance()

    if amount is None:
        console.print("[yellow]Balance could not be determined.[/yellow]")
    else:
        console.print(f"[bold]{integration.name} balance:[/bold] {amount:.2f}")


@cli.command("history")
@click.argument("provider")
@click.option("--from", "from_date", type=click.DateTime(), default=None, help="Earliest placement date")
@click.option("--to", "to_date", type=click.DateTime(), default=None, help="Latest placement date")
@click.pass_context
def history(ctx, provider, from_date, to_date):
    """Show bet history from one provider."""
    with provider_session(ctx, provider) as integration:
        bets = integration.get_bet_history(from_date, to_date)

    if not bets:
        console.print("[yellow]No bets found.[/yellow]")
        return

    table = Table(title=f"Bet History ({integration.name})")
    table.add_column("Placed")
    table.add_column("Bet ID", style="dim")
    table.add_column("Description", style="cyan")
    table.add_column("Stake", justify="right")
    table.add_column("Odds", justify="right")
    table.add_column("Return", justify="right", style="green")
    table.add_column("Status")

    for bet in bets:
        table.add_row(
            bet.placed_at.strftime("%Y-%m-%d %H:%M"),
            bet.provider_bet_id,
            bet.description[:40],
            f"{bet.stake:.2f}",
            f"{bet.price:.2f}",
            f"{bet.settlement:.2f}" if bet.settlement is not None else "-",
            bet.status,
        )

    console.print(table)


@cli.command("place-bet")
@click.argument("provider")
@click.argument("match_id")
@click.argument("odds_id")
@click.argument("stake")
@click.option("--market", "-m", required=True, help="Market, e.g. HomeWin or Over25Goals")
@click.option("--price", "-p", required=True, help="Price you expect to get")
@click.pass_context
def place_bet(ctx, provider, match_id, odds_id, stake, market, price):
    """Place a bet on one provider."""
    provider_id = _parse_provider(provider)
    bet_type = BetType.parse(market)
    if bet_type is None:
        raise click.BadParameter(f"Unknown market {market!r}", param_hint="--market")

    try:
        request = BetPlacementRequest(
            provider_match_id=match_id,
            provider_odds_id=odds_id,
            amount=_parse_decimal(stake, "STAKE"),
            bet_type=bet_type,
            expected_price=_parse_decimal(price, "--price"),
        )
    except ValueError as e:
        raise click.BadParameter(str(e))

    registry = _build_registry(ctx)
    service = BetPlacementService(registry)
    try:
        result = service.place_bet(provider_id, request)
    except ProviderNotSupportedError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    finally:
        registry.close()

    if result.success:
        console.print("[bold green]Bet placed![/bold green]")
        console.print(f"  Bet ID: {result.provider_bet_id or '-'}")
        console.print(f"  Stake: {result.accepted_stake}")
        console.print(f"  Price: {result.accepted_price}")
    else:
        console.print(f"[red]Bet not placed: {result.error_message}[/red]")
        sys.exit(1)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
