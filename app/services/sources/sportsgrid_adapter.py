"""SportsGrid games API adapter (odds for upcoming games, final results)."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta
from typing import Any, Optional

from app.config import settings
from app.errors import FetchError
from app.schemas.base import Sport
from app.schemas.odds import GameStatus
from app.schemas.sources import SourceType
from app.services.sources.base import (
    BaseSourceAdapter,
    FetchOptions,
    FetchResult,
    RawGameResult,
    RawOddsData,
    SourceSnapshot,
    ValidationResult,
    odds_to_news_item,
    parse_iso,
    utcnow,
)

logger = logging.getLogger(__name__)

SPORTSGRID_API_URL = "https://app.sportsgrid.com/api/v1/getSingleSportGamesData"

SPORT_MAP: dict[Sport, str] = {
    Sport.NFL: "NFL",
    Sport.NBA: "NBA",
    Sport.MLB: "MLB",
    Sport.NHL: "NHL",
    Sport.CBB: "CBB",
    Sport.CFB: "CFB",
    Sport.SOCCER: "Soccer",
    Sport.BOXING: "Boxing",
    Sport.SPORTS_BETTING: "NFL",
}

STANDARD_JUICE = -110

_SIGNED_NUMBER = re.compile(r"([+-]?\d+\.?\d*)")
_UNSIGNED_NUMBER = re.compile(r"(\d+\.?\d*)")


def parse_line(value: Any) -> Optional[float]:
    """Pull a signed number out of strings like "-3.5" or "+125"."""
    if value is None or value == "":
        return None
    match = _SIGNED_NUMBER.search(str(value))
    return float(match.group(1)) if match else None


def parse_total(value: Any) -> Optional[float]:
    """Pull the total out of strings like "U 235.5"."""
    if value is None or value == "":
        return None
    match = _UNSIGNED_NUMBER.search(str(value))
    return float(match.group(1)) if match else None


def spread_winner(home_score: int, away_score: int, home_spread: Optional[float]) -> Optional[str]:
    if home_spread is None:
        return None
    adjusted = home_score + home_spread
    if adjusted > away_score:
        return "HOME"
    if adjusted < away_score:
        return "AWAY"
    return "PUSH"


def total_result(home_score: int, away_score: int, total: Optional[float]) -> Optional[str]:
    if total is None:
        return None
    actual = home_score + away_score
    if actual > total:
        return "OVER"
    if actual < total:
        return "UNDER"
    return "PUSH"


def _as_int(value: Optional[float]) -> Optional[int]:
    return int(value) if value is not None else None


class SportsGridAdapter(BaseSourceAdapter):
    type = SourceType.SPORTSGRID_API
    name = "SportsGrid"

    max_requests = 10
    window_seconds = 60.0
    min_delay_seconds = 6.0

    def sport_name(self, source: SourceSnapshot) -> str:
        return source.config.get("sport") or SPORT_MAP.get(source.sport, "NFL")

    async def fetch(
        self, source: SourceSnapshot, options: Optional[FetchOptions] = None
    ) -> FetchResult:
        odds = await self.fetch_odds(source, options)
        items = [odds_to_news_item(o, "sg", author="SportsGrid") for o in odds]
        status = self.get_rate_limit_status()
        logger.info(f"-> {source.name}: {len(odds)} game line(s)")
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
        game_day = options.date.date() if options and options.date else utcnow().date()
        games = await self.fetch_games(self.sport_name(source), source.config, game_day)

        odds: list[RawOddsData] = []
        for game in games:
            if options and options.limit and len(odds) >= options.limit:
                break
            if game.get("final"):
                continue
            parsed = parse_game_to_odds(game)
            if parsed is not None:
                odds.append(parsed)
        return odds

    async def fetch_results(
        self, source: SourceSnapshot, options: Optional[FetchOptions] = None
    ) -> list[RawGameResult]:
        if options and options.date:
            game_day = options.date.date()
        else:
            game_day = utcnow().date() - timedelta(days=1)
        games = await self.fetch_games(self.sport_name(source), source.config, game_day)

        results: list[RawGameResult] = []
        for game in games:
            if options and options.limit and len(results) >= options.limit:
                break
            parsed = parse_game_to_result(game)
            if parsed is not None:
                results.append(parsed)
        return results

    async def fetch_results_for_date_range(
        self,
        source: SourceSnapshot,
        start: date,
        end: date,
        limit: Optional[int] = None,
    ) -> list[RawGameResult]:
        """Backfill results one day at a time, inclusive of both ends."""
        results: list[RawGameResult] = []
        day = start
        while day <= end:
            options = FetchOptions(date=datetime(day.year, day.month, day.day))
            results.extend(await self.fetch_results(source, options))
            if limit and len(results) >= limit:
                return results[:limit]
            day += timedelta(days=1)
        return results

    async def fetch_games(
        self, sport: str, config: dict[str, Any], game_day: date
    ) -> list[dict[str, Any]]:
        token = config.get("apiToken") or settings.sportsgrid_api_token
        if not token:
            raise FetchError(
                "SportsGrid API token is required. Set SPORTSGRID_API_TOKEN "
                "or provide apiToken in config."
            )

        data = await self.request_json(
            "POST",
            SPORTSGRID_API_URL,
            headers={"Accept": "application/json", "Authorization": f"Bearer {token}"},
            data={
                "date": game_day.isoformat(),
                "sport": sport.upper(),
                "viewType": "game_by_date",
            },
        )
        return ((data or {}).get("data") or {}).get("games") or []

    def validate_config(self, config: Any) -> ValidationResult:
        invalid = self.config_errors(config)
        if invalid:
            return invalid

        if config.get("sport") is not None and not isinstance(config["sport"], str):
            return self.result(["sport must be a string if provided (e.g., 'NFL', 'NBA', 'MLB')"])
        if config.get("apiToken") is not None and not isinstance(config["apiToken"], str):
            return self.result(["apiToken must be a string if provided"])

        return self.result(
            [],
            [
                "SportsGrid API has self-imposed rate limiting. "
                "Recommended refresh interval: 10+ minutes."
            ],
        )

    async def test_connection(self, config: dict[str, Any]) -> bool:
        try:
            await self.fetch_games(config.get("sport") or "NFL", config, utcnow().date())
        except FetchError:
            return False
        return True


def parse_game_to_odds(game: dict[str, Any]) -> Optional[RawOddsData]:
    home = game.get("home_full_name")
    away = game.get("away_full_name")
    if not home or not away:
        return None

    return RawOddsData(
        external_game_id=str(game.get("key") or ""),
        home_team=home,
        away_team=away,
        game_date=parse_iso(game.get("scheduled")) or utcnow(),
        home_moneyline=_as_int(parse_line(game.get("home_ml_point"))),
        away_moneyline=_as_int(parse_line(game.get("away_ml_point"))),
        spread=parse_line(game.get("home_spread_point")),
        spread_juice=STANDARD_JUICE,
        over_under=parse_total(game.get("home_total_point")),
        over_juice=STANDARD_JUICE,
        under_juice=STANDARD_JUICE,
    )


def parse_game_to_result(game: dict[str, Any]) -> Optional[RawGameResult]:
    home = game.get("home_full_name")
    away = game.get("away_full_name")
    if not home or not away or not game.get("final"):
        return None
    home_score = game.get("home_score")
    away_score = game.get("away_score")
    if home_score is None or away_score is None:
        return None
    home_score, away_score = int(home_score), int(away_score)

    if game.get("postponed"):
        status = GameStatus.POSTPONED
    elif game.get("delayed"):
        status = GameStatus.DELAYED
    else:
        status = GameStatus.FINAL

    return RawGameResult(
        external_game_id=str(game.get("key") or ""),
        home_team=home,
        away_team=away,
        game_date=parse_iso(game.get("scheduled")) or utcnow(),
        home_score=home_score,
        away_score=away_score,
        status=status.value,
        spread_winner=spread_winner(home_score, away_score, parse_line(game.get("home_spread_point"))),
        total_result=total_result(home_score, away_score, parse_total(game.get("home_total_point"))),
        stats={
            "win_team": game.get("win_team"),
            "header_description": game.get("header_description"),
            "duration": game.get("duration"),
            "spread": game.get("home_spread_point"),
            "over_under": game.get("home_total_point"),
            "home_moneyline": game.get("home_ml_point"),
            "away_moneyline": game.get("away_ml_point"),
        },
    )
