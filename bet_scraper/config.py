"""Configuration and settings for the betting scraper."""
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from dotenv import load_dotenv

from .models import Provider

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Base paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = BASE_DIR / "data"
EXPORT_DIR = DATA_DIR / "scrapes"

# Provider configuration file (same shape as the service's appsettings.json)
PROVIDERS_CONFIG_PATH = os.getenv("BETTING_PROVIDERS_CONFIG", "")

# Scraping policy
SCRAPE_HOURS_AHEAD = int(os.getenv("SCRAPE_HOURS_AHEAD", "48"))
SCRAPE_MAX_MATCHES_PER_CYCLE = int(os.getenv("SCRAPE_MAX_MATCHES_PER_CYCLE", "5"))
SCRAPE_PROVIDER_DELAY_SECONDS = float(os.getenv("SCRAPE_PROVIDER_DELAY_SECONDS", "1"))
SCRAPE_MATCH_DELAY_SECONDS = float(os.getenv("SCRAPE_MATCH_DELAY_SECONDS", "2"))
SCRAPE_CYCLE_INTERVAL_SECONDS = float(os.getenv("SCRAPE_CYCLE_INTERVAL_SECONDS", "1800"))
SCRAPE_RECOVERY_INTERVAL_SECONDS = float(os.getenv("SCRAPE_RECOVERY_INTERVAL_SECONDS", "300"))
SCRAPE_PARALLEL_PROVIDERS = _env_bool("SCRAPE_PARALLEL_PROVIDERS", False)

# Browser settings
BROWSER_HEADLESS = _env_bool("BROWSER_HEADLESS", True)
BROWSER_PAGE_TIMEOUT_SECONDS = float(os.getenv("BROWSER_PAGE_TIMEOUT_SECONDS", "10"))
BROWSER_CONFIRM_TIMEOUT_SECONDS = float(os.getenv("BROWSER_CONFIRM_TIMEOUT_SECONDS", "5"))
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Provider site URLs
BET365_BASE_URL = "https://www.bet365.com"
BET365_FOOTBALL_COUPON_PATH = "/#/AC/B1/C1/D8/E45482/F19/"
BET365_MATCH_PATH = "/#/AC/B1/C1/D8/E{match_id}/F19/"
BET365_HISTORY_PATH = "/#/MB/"


@dataclass
class ProviderCredentials:
    """Login details for one betting provider."""
    username: str = ""
    password: str = ""

    @property
    def complete(self) -> bool:
        return bool(self.username) and bool(self.password)


@dataclass
class Settings:
    """Provider selection and credentials.

    ``enabled`` keeps the raw names from configuration; the registry decides
    which of them refer to real providers.
    """
    enabled: List[str] = field(default_factory=list)
    credentials: Dict[Provider, ProviderCredentials] = field(default_factory=dict)
    headless: bool = BROWSER_HEADLESS

    def credentials_for(self, provider: Provider) -> Optional[ProviderCredentials]:
        return self.credentials.get(provider)


def _read_config_file(path: Path) -> dict:
    """Read the ``BettingProviders`` section of a JSON config file."""
    try:
        with open(path, encoding="utf-8") as f:
            document = json.load(f)
    except FileNotFoundError:
        logger.warning(f"Provider config file not found: {path}")
        return {}
    except (OSError, ValueError) as e:
        logger.error(f"Could not read provider config {path}: {e}")
        return {}

    if not isinstance(document, dict):
        logger.error(f"Provider config {path} is not a JSON object")
        return {}

    section = document.get("BettingProviders", document)
    return section if isinstance(section, dict) else {}


def load_settings(
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Build provider settings from a JSON file and the environment.

    Args:
        config_path: Path to a JSON file (falls back to BETTING_PROVIDERS_CONFIG)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Settings with environment values overriding file values per field
    """
    if environ is None:
        environ = os.environ
    if config_path is None:
        config_path = environ.get("BETTING_PROVIDERS_CONFIG", PROVIDERS_CONFIG_PATH)

    section = _read_config_file(Path(config_path)) if config_path else {}

    enabled = section.get("Enabled") or []
    if isinstance(enabled, str):
        enabled = [enabled]
    elif not isinstance(enabled, list):
        logger.error(f"Ignoring BettingProviders.Enabled: expected a list of names, got {enabled!r}")
        enabled = []
    env_enabled = environ.get("BETTING_PROVIDERS_ENABLED", "")
    if env_enabled.strip():
        enabled = [name.strip() for name in env_enabled.split(",") if name.strip()]

    # Case-insensitive lookup of provider sections in the file
    file_sections = {
        key.lower(): value for key, value in section.items()
        if isinstance(value, dict)
    }

    credentials: Dict[Provider, ProviderCredentials] = {}
    for provider in Provider:
        file_section = file_sections.get(provider.value.lower())
        prefix = provider.value.upper()
        env_username = environ.get(f"{prefix}_USERNAME")
        env_password = environ.get(f"{prefix}_PASSWORD")

        if file_section is None and env_username is None and env_password is None:
            continue

        file_section = file_section or {}
        credentials[provider] = ProviderCredentials(
            username=env_username if env_username is not None else str(file_section.get("Username") or ""),
            password=env_password if env_password is not None else str(file_section.get("Password") or ""),
        )

    headless_value = environ.get("BROWSER_HEADLESS")
    headless = BROWSER_HEADLESS
    if headless_value:
        headless = headless_value.strip().lower() in ("1", "true", "yes", "on")

    return Settings(enabled=[str(name) for name in enabled], credentials=credentials, headless=headless)
