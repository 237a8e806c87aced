"""DraftKings sportsbook JSON gateway adapter."""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from app.errors import FetchError
from app.schemas.base import Sport
from app.schemas.sources import SourceType
from app.services.sources.base import (
    BaseSourceAdapter,
    FetchOptions,
    FetchResult,
    RawOddsData,
    SourceSnapshot,
    ValidationResult,
    config_sport,
    odds_to_news_item,
    parse_iso,
    utcnow,
)

logger = logging.getLogger(__name__)

DK_GATEWAY_BASE = "https://sportsbook-nash-usva.draftkings.com/api/sportscontent/dkusva/v1"

# Sport -> (sport id, league id). Leagues without an id are queried by sport.
SPORT_MAP: dict[Sport, tuple[int, Optional[int]]] = {
    Sport.NFL: (1, 88808),
    Sport.NBA: (3, 42648),
    Sport.MLB: (2, 84240),
    Sport.NHL: (4, 42133),
    Sport.SOCCER: (5, None),
    Sport.BOXING: (15, None),
    Sport.SPORTS_BETTING: (1, None),
}

_MATCHUP = re.compile(r"(.+?)\s+(?:@|vs?\.?)\s+(.+)", re.IGNORECASE)


def events_url(sport: Sport, league_id: Optional[int] = None) -> str:
    """Gateway events URL; an explicit league id wins over the sport's default league."""
    sport_id, default_league = SPORT_MAP.get(sport, SPORT_MAP[Sport.NFL])
    league_id = league_id or default_league
    if league_id:
        return f"{DK_GATEWAY_BASE}/leagues/{league_id}/events"
    return f"{DK_GATEWAY_BASE}/sports/{sport_id}/events"


def _league_id(config: dict[str, Any]) -> Optional[int]:
    """Numeric league id from ``config["league"]``; anything else means the sport default."""
    value = config.get("league")
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _american(outcome: dict[str, Any]) -> Optional[int]:
    value = outcome.get("oddsAmerican")
    if value is None or value == "":
        return None
    try:
        return int(str(value).replace("−", "-"))
    except ValueError:
        return None


def _line(outcome: dict[str, Any]) -> Optional[float]:
    value = outcome.get("line")
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_event(event: dict[str, Any]) -> Optional[RawOddsData]:
    """Turn one gateway event into a line. Away team is listed first."""
    event_id = event.get("eventId") or event.get("id")
    name = event.get("name")
    if not event_id or not name:
        return None

    away, home = "Unknown", "Unknown"
    match = _MATCHUP.match(name)
    if match:
        away, home = match.group(1).strip(), match.group(2).strip()
    else:
        teams = event.get("teams") or []
        if len(teams) >= 2:
            away = teams[0].get("name") or "Unknown"
            home = teams[1].get("name") or "Unknown"

    values: dict[str, Any] = {}
    for offer in event.get("offers") or []:
        label = (offer.get("label") or "").lower()
        outcomes = offer.get("outcomes") or []
        if len(outcomes) < 2:
            continue
        if label == "moneyline":
            values["away_moneyline"] = _american(outcomes[0])
            values["home_moneyline"] = _american(outcomes[1])
        elif label in ("spread", "point spread"):
            values["spread"] = _line(outcomes[1])
            values["spread_juice"] = _american(outcomes[1])
        elif label in ("total", "over/under"):
            values["over_under"] = _line(outcomes[0])
            values["over_juice"] = _american(outcomes[0])
            values["under_juice"] = _american(outcomes[1])

    return RawOddsData(
        external_game_id=str(event_id),
        home_team=home,
        away_team=away,
        game_date=parse_iso(event.get("startDate")) or utcnow(),
        **values,
    )


class DraftKingsAdapter(BaseSourceAdapter):
    type = SourceType.DRAFTKINGS_API
    name = "DraftKings"

    max_requests = 6
    window_seconds = 60.0
    min_delay_seconds = 10.0

    async def fetch(
        self, source: SourceSnapshot, options: Optional[FetchOptions] = None
    ) -> FetchResult:
        odds = await self.fetch_odds(source, options)
        items = [odds_to_news_item(o, "dk", author="DraftKings Sportsbook") for o in odds]
        status = self.get_rate_limit_status()
        logger.info(f"-> {source.name}: {len(odds)} event line(s)")
        return FetchResult(
            items=items,
            has_more=False,
            rate_limit_remaining=status.remaining,
            rate_limit_reset=status.reset_at,
            metadata={"odds_count": len(odds), "timestamp": utcnow().isoformat()},
        )

    async def fetch_odds(
        self, source: SourceSnapshot, options: Optional[FetchOptions] = None
    ) -> list[RawOddsData]:
        try:
            events = await self.fetch_events(
                config_sport(source.config, source.sport), _league_id(source.config)
            )
        except FetchError as exc:
            raise FetchError(
                f"Failed to fetch DraftKings odds: {exc}", status_code=exc.status_code
            ) from exc

        odds: list[RawOddsData] = []
        for event in events:
            if options and options.limit and len(odds) >= options.limit:
                break
            parsed = parse_event(event)
            if parsed is not None:
                odds.append(parsed)
        return odds

    async def fetch_events(
        self, sport: Sport, league_id: Optional[int] = None
    ) -> list[dict[str, Any]]:
        data = await self.request_json(
            "GET",
            events_url(sport, league_id),
            headers={"Accept": "application/json", "Accept-Language": "en-US,en;q=0.9"},
        )
        return (data or {}).get("events") or []

    def validate_config(self, config: Any) -> ValidationResult:
        invalid = self.config_errors(config)
        if invalid:
            return invalid

        errors: list[str] = []
        if not config.get("sport") or not isinstance(config["sport"], str):
            errors.append("sport is required (e.g., 'nfl', 'nba', 'mlb')")
        elif config["sport"].upper() not in Sport.__members__:
            errors.append(f"Unsupported sport: {config['sport']}")
        league = config.get("league")
        if league not in (None, "") and _league_id(config) is None:
            errors.append("league must be a numeric DraftKings league id if provided")
        if errors:
            return self.result(errors)

        return self.result(
            [],
            ["DraftKings has strict rate limiting. Fetch interval should be at least 10 seconds."],
        )

    async def test_connection(self, config: dict[str, Any]) -> bool:
        try:
            events = await self.fetch_events(config_sport(config, Sport.NFL), _league_id(config))
        except FetchError:
            return False
        return len(events) > 0
