"""Destinations for harvested matches and odds."""
import json
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from .models import Match, Odds, utcnow

logger = logging.getLogger(__name__)


def match_to_dict(match: Match) -> dict:
    return {
        "home_team": match.home_team,
        "away_team": match.away_team,
        "kickoff": match.kickoff.isoformat(),
        "league": match.league,
        "competition": match.competition,
        "scraped_at": match.scraped_at.isoformat(),
        "providers": [
            {
                "provider": mapping.provider.value,
                "provider_match_id": mapping.provider_match_id,
                "url": mapping.provider_url,
                "event_name": mapping.provider_event_name,
                "created_at": mapping.created_at.isoformat(),
                "last_updated_at": mapping.last_updated_at.isoformat(),
            }
            for mapping in match.provider_mappings
        ],
    }


def odds_to_dict(odds: Odds) -> dict:
    return {
        "provider": odds.provider.value,
        "provider_match_id": odds.provider_match_id,
        "market": odds.bet_type.value,
        "price": str(odds.price),
        "provider_odds_id": odds.provider_odds_id,
        "description": odds.description,
        "scraped_at": odds.scraped_at.isoformat(),
    }


class RecordSink:
    """Receives the records produced by each harvest cycle."""

    def publish(self, matches: Sequence[Match], odds: Sequence[Odds]) -> None:
        raise NotImplementedError


class MemorySink(RecordSink):
    """Keeps every published batch in memory."""

    def __init__(self):
        self.batches: List[Tuple[List[Match], List[Odds]]] = []

    def publish(self, matches: Sequence[Match], odds: Sequence[Odds]) -> None:
        self.batches.append((list(matches), list(odds)))

    @property
    def matches(self) -> List[Match]:
        return [match for batch_matches, _ in self.batches for match in batch_matches]

    @property
    def odds(self) -> List[Odds]:
        return [item for _, batch_odds in self.batches for item in batch_odds]


class JsonExportSink(RecordSink):
    """Write one JSON document per cycle into ``output_dir``."""

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)
        self.last_path: Optional[Path] = None

    def publish(self, matches: Sequence[Match], odds: Sequence[Odds]) -> None:
        generated_at = utcnow()
        output = {
            "generated_at": generated_at.isoformat(),
            "match_count": len(matches),
            "odds_count": len(odds),
            "matches": [match_to_dict(m) for m in matches],
            "odds": [odds_to_dict(o) for o in odds],
        }

        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / f"scrape-{generated_at.strftime('%Y%m%dT%H%M%S%fZ')}.json"
        with open(path, "w", encoding="utf-8") as f:
            json.dump(output, f, indent=2)

        self.last_path = path
        logger.info(f"Exported {len(matches)} matches and {len(odds)} odds to {path}")
