"""ESPN public site API adapter (news, scoreboard, results)."""

from __future__ import annotations

import logging
from typing import Any, Optional

from app.errors import FetchError
from app.schemas.base import Sport
from app.schemas.news_items import NewsItemType
from app.schemas.odds import GameStatus
from app.schemas.sources import SourceType
from app.services.sources.base import (
    BaseSourceAdapter,
    FetchOptions,
    FetchResult,
    RawGameResult,
    RawNewsItem,
    SourceSnapshot,
    ValidationResult,
    classify_news_type,
    parse_iso,
    stable_id,
    utcnow,
    within_window,
)

logger = logging.getLogger(__name__)

ESPN_API_BASE = "https://site.api.espn.com/apis/site/v2"

SPORT_MAP: dict[Sport, tuple[str, str]] = {
    Sport.NFL: ("football", "nfl"),
    Sport.NBA: ("basketball", "nba"),
    Sport.MLB: ("baseball", "mlb"),
    Sport.NHL: ("hockey", "nhl"),
    Sport.CBB: ("basketball", "mens-college-basketball"),
    Sport.CFB: ("football", "college-football"),
    Sport.SOCCER: ("soccer", "usa.1"),
    Sport.BOXING: ("mma", "ufc"),
    Sport.SPORTS_BETTING: ("football", "nfl"),
}

VALID_SECTIONS = ("news", "scores", "odds", "standings")

_STATUS_MAP = {
    "STATUS_FINAL": GameStatus.FINAL,
    "STATUS_POSTPONED": GameStatus.POSTPONED,
    "STATUS_DELAYED": GameStatus.DELAYED,
    "STATUS_IN_PROGRESS": GameStatus.IN_PROGRESS,
}


def _team_name(competitor: dict[str, Any], fallback: str) -> str:
    team = competitor.get("team") or {}
    return team.get("displayName") or team.get("name") or fallback


def _split_competitors(
    event: dict[str, Any],
) -> Optional[tuple[dict[str, Any], dict[str, Any], dict[str, Any]]]:
    competitions = event.get("competitions") or []
    if not competitions:
        return None
    competition = competitions[0]
    competitors = competition.get("competitors") or []
    home = next((c for c in competitors if c.get("homeAway") == "home"), None)
    away = next((c for c in competitors if c.get("homeAway") == "away"), None)
    if home is None or away is None:
        return None
    return competition, home, away


def _score(competitor: dict[str, Any]) -> Optional[int]:
    try:
        return int(competitor.get("score"))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


class EspnAdapter(BaseSourceAdapter):
    type = SourceType.ESPN_API
    name = "ESPN"

    max_requests = 60
    window_seconds = 60.0

    def resolve_path(self, source: SourceSnapshot) -> tuple[str, str]:
        default_sport, default_league = SPORT_MAP.get(source.sport, SPORT_MAP[Sport.NFL])
        sport = source.config.get("sport") or default_sport
        league = source.config.get("league") or default_league
        return sport, league

    async def fetch(
        self, source: SourceSnapshot, options: Optional[FetchOptions] = None
    ) -> FetchResult:
        sport, league = self.resolve_path(source)
        if source.config.get("section") == "scores":
            items = await self.fetch_scores_as_news(sport, league, options)
        else:
            items = await self.fetch_news(sport, league, options)

        status = self.get_rate_limit_status()
        logger.info(f"-> {source.name}: {len(items)} item(s) from {sport}/{league}")
        return FetchResult(
            items=items,
            has_more=False,
            rate_limit_remaining=status.remaining,
            rate_limit_reset=status.reset_at,
            metadata={"sport": sport, "league": league, "timestamp": utcnow().isoformat()},
        )

    async def fetch_news(
        self, sport: str, league: str, options: Optional[FetchOptions]
    ) -> list[RawNewsItem]:
        data = await self.request_json(
            "GET",
            f"{ESPN_API_BASE}/sports/{sport}/{league}/news",
            headers={"Accept": "application/json"},
        )
        items: list[RawNewsItem] = []
        seen: set[str] = set()
        for article in data.get("articles") or []:
            if options and options.limit and len(items) >= options.limit:
                break
            item = parse_article(article)
            if item is None or item.external_id in seen:
                continue
            if not within_window(item.published_at, options):
                continue
            seen.add(item.external_id)
            items.append(item)
        return items

    async def fetch_scores_as_news(
        self, sport: str, league: str, options: Optional[FetchOptions]
    ) -> list[RawNewsItem]:
        data = await self.scoreboard(sport, league)
        items: list[RawNewsItem] = []
        seen: set[str] = set()
        for event in data.get("events") or []:
            if options and options.limit and len(items) >= options.limit:
                break
            item = parse_game_as_news(event)
            if item is None or item.external_id in seen:
                continue
            seen.add(item.external_id)
            items.append(item)
        return items

    async def scoreboard(self, sport: str, league: str) -> dict[str, Any]:
        return await self.request_json(
            "GET",
            f"{ESPN_API_BASE}/sports/{sport}/{league}/scoreboard",
            headers={"Accept": "application/json"},
        )

    async def fetch_results(
        self, source: SourceSnapshot, options: Optional[FetchOptions] = None
    ) -> list[RawGameResult]:
        sport, league = self.resolve_path(source)
        data = await self.scoreboard(sport, league)

        results: list[RawGameResult] = []
        for event in data.get("events") or []:
            parts = _split_competitors(event)
            if parts is None:
                continue
            competition, home, away = parts
            home_score, away_score = _score(home), _score(away)
            game_date = parse_iso(event.get("date"))
            if home_score is None or away_score is None or game_date is None:
                continue

            status_name = ((event.get("status") or {}).get("type") or {}).get("name", "")
            results.append(
                RawGameResult(
                    external_game_id=str(event.get("id")),
                    home_team=_team_name(home, "Unknown"),
                    away_team=_team_name(away, "Unknown"),
                    game_date=game_date,
                    home_score=home_score,
                    away_score=away_score,
                    status=_STATUS_MAP.get(status_name, GameStatus.SCHEDULED).value,
                    stats={
                        "venue": (competition.get("venue") or {}).get("fullName"),
                        "attendance": competition.get("attendance"),
                        "broadcasts": competition.get("broadcasts"),
                    },
                )
            )
        return results

    def validate_config(self, config: Any) -> ValidationResult:
        invalid = self.config_errors(config)
        if invalid:
            return invalid

        errors: list[str] = []
        warnings: list[str] = []

        section = config.get("section")
        if not section or not isinstance(section, str):
            errors.append("section is required (news, scores, odds, or standings)")
        elif section not in VALID_SECTIONS:
            errors.append(f"section must be one of: {', '.join(VALID_SECTIONS)}")

        if config.get("sport") is not None and not isinstance(config["sport"], str):
            errors.append("sport must be a string if provided")
        if config.get("league") is not None and not isinstance(config["league"], str):
            errors.append("league must be a string if provided")
        if config.get("team"):
            warnings.append("Team filtering is not yet fully implemented")

        return self.result(errors, warnings)

    async def test_connection(self, config: dict[str, Any]) -> bool:
        sport = config.get("sport") or "football"
        league = config.get("league") or "nfl"
        try:
            data = await self.request_json(
                "GET", f"{ESPN_API_BASE}/sports/{sport}/{league}/news"
            )
        except FetchError:
            return False
        return bool(data.get("articles"))


def parse_article(article: dict[str, Any]) -> Optional[RawNewsItem]:
    headline = article.get("headline")
    if not headline:
        return None
    description = article.get("description") or None
    images = article.get("images") or []
    links = article.get("links") or {}

    return RawNewsItem(
        external_id=f"espn-{article.get('id') or stable_id('h', headline)}",
        type=classify_news_type(headline, description),
        headline=headline,
        content=description,
        url=(links.get("web") or {}).get("href"),
        image_url=images[0].get("url") if images else None,
        published_at=parse_iso(article.get("published")) or utcnow(),
        author=article.get("byline") or None,
    )


def parse_game_as_news(event: dict[str, Any]) -> Optional[RawNewsItem]:
    """Render a scoreboard event as a result, live, or schedule headline."""
    parts = _split_competitors(event)
    if parts is None:
        return None
    _, home, away = parts
    home_name = _team_name(home, "Home")
    away_name = _team_name(away, "Away")
    home_score = _score(home) or 0
    away_score = _score(away) or 0

    status = (event.get("status") or {}).get("type") or {}
    status_name = status.get("name") or "scheduled"
    detail = status.get("detail") or status.get("shortDetail")

    if status_name == "STATUS_FINAL":
        if home_score > away_score:
            winner, loser = home_name, away_name
        else:
            winner, loser = away_name, home_name
        headline = (
            f"{winner} defeats {loser} "
            f"{max(home_score, away_score)}-{min(home_score, away_score)}"
        )
        news_type = NewsItemType.GAME_RESULT
    elif status_name == "STATUS_IN_PROGRESS":
        headline = f"{away_name} @ {home_name}: {away_score}-{home_score} ({detail})"
        news_type = NewsItemType.BREAKING
    else:
        headline = f"{away_name} @ {home_name} - {detail or 'Scheduled'}"
        news_type = NewsItemType.SCHEDULE

    links = event.get("links") or []
    return RawNewsItem(
        external_id=f"espn-game-{event.get('id')}",
        type=news_type,
        headline=headline,
        content=event.get("name"),
        url=links[0].get("href") if links else None,
        published_at=parse_iso(event.get("date")) or utcnow(),
        author="ESPN",
    )
