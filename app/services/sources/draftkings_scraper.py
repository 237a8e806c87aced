"""Headless-browser scrape of the DraftKings sportsbook pages.

Used when the JSON gateway is blocked. Lines are read from the page's
embedded ``window.__INITIAL_STATE__`` blob when present, otherwise from the
rendered DOM by locating the smallest elements that mention two known teams.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from playwright.async_api import Browser, Page, Playwright, Route, async_playwright
from playwright.async_api import Error as PlaywrightError

from app.config import settings
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
    stable_id,
    utcnow,
)

logger = logging.getLogger(__name__)

DK_BASE_URL = "https://sportsbook.draftkings.com"

SPORT_PATHS: dict[Sport, str] = {
    Sport.NFL: "/leagues/football/nfl",
    Sport.NBA: "/leagues/basketball/nba",
    Sport.MLB: "/leagues/baseball/mlb",
    Sport.NHL: "/leagues/hockey/nhl",
    Sport.CBB: "/leagues/basketball/ncaab",
    Sport.CFB: "/leagues/football/ncaaf",
    Sport.SOCCER: "/leagues/soccer",
    Sport.BOXING: "/leagues/mma/ufc",
    Sport.SPORTS_BETTING: "/leagues/football/nfl",
}

NFL_TEAMS = [
    "Chiefs", "Eagles", "Bills", "Ravens", "Lions", "Cowboys", "Packers", "Rams",
    "49ers", "Vikings", "Dolphins", "Chargers", "Texans", "Steelers", "Broncos", "Bengals",
    "Seahawks", "Buccaneers", "Saints", "Bears", "Commanders", "Jets", "Giants", "Raiders",
    "Falcons", "Cardinals", "Colts", "Jaguars", "Patriots", "Titans", "Browns", "Panthers",
]

NBA_TEAMS = [
    "Lakers", "Celtics", "Warriors", "Nuggets", "Heat", "Bucks", "Suns", "Clippers",
    "Mavericks", "Nets", "Knicks", "76ers", "Bulls", "Hawks", "Kings", "Cavaliers",
    "Timberwolves", "Thunder", "Pelicans", "Grizzlies", "Jazz", "Blazers", "Pacers",
    "Magic", "Raptors", "Hornets", "Wizards", "Rockets", "Pistons", "Spurs",
]

BLOCKED_TITLE_MARKERS = ("Access Denied", "captcha", "blocked")
BLOCKED_HTML_MARKERS = ("px-captcha", "Please verify you are a human")

_STATE_MARKER = re.compile(r"window\.__INITIAL_STATE__\s*=\s*")
_NAME_SPLIT = re.compile(r"\s+(?:@|vs?\.?)\s+", re.IGNORECASE)
_MONEYLINE = re.compile(r"[+-]\d{3}")
_HALF_POINT = re.compile(r"[+-]?\d+\.5")
_TOTAL = re.compile(r"[OU]\s*(\d+\.?\d*)", re.IGNORECASE)

_STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', { get: () => undefined });
window.chrome = { runtime: {} };
Object.defineProperty(navigator, 'languages', { get: () => ['en-US','en'] });
Object.defineProperty(navigator, 'plugins', { get: () => [1, 2, 3, 4, 5] });
"""

# Returns [{teams: [a, b], text}] for the tightest element per team pair.
_DOM_GAMES_SCRIPT = """
(teams) => {
  const candidates = [];
  document.querySelectorAll('*').forEach((el) => {
    if (el.children.length === 0) return;
    const text = el.textContent || '';
    if (text.length < 50 || text.length >= 2000) return;
    const found = teams.filter((t) => text.includes(t));
    if (found.length !== 2) return;
    if (!/[+-]\\d{3}/.test(text) && !/\\d+\\.5/.test(text)) return;
    candidates.push({ teams: found, text: text.trim() });
  });
  candidates.sort((a, b) => a.text.length - b.text.length);
  const byPair = new Map();
  for (const c of candidates) {
    const key = [...c.teams].sort().join('|');
    if (!byPair.has(key)) byPair.set(key, c);
  }
  return [...byPair.values()];
}
"""


async def _skip_heavy_resources(route: Route) -> None:
    if route.request.resource_type in ("image", "font", "media"):
        await route.abort()
    else:
        await route.continue_()


def is_blocked(title: str, html: str) -> bool:
    if any(marker in title for marker in BLOCKED_TITLE_MARKERS):
        return True
    return any(marker in html for marker in BLOCKED_HTML_MARKERS)


def extract_initial_state(html: str) -> Optional[dict[str, Any]]:
    """Pull the embedded state object out of the page with a brace scan."""
    marker = _STATE_MARKER.search(html)
    if marker is None:
        return None
    start = html.find("{", marker.end())
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(html)):
        ch = html[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                try:
                    state = json.loads(html[start : i + 1])
                except ValueError:
                    logger.debug("Embedded state is not valid JSON")
                    return None
                return state if isinstance(state, dict) else None
    return None


def _collect(state: dict[str, Any], key: str) -> dict[str, Any]:
    found = state.get(key)
    if isinstance(found, dict) and found:
        return dict(found)
    merged: dict[str, Any] = {}
    for value in state.values():
        if isinstance(value, dict) and isinstance(value.get(key), dict):
            merged.update(value[key])
    return merged


def parse_games_from_state(state: dict[str, Any]) -> list[RawOddsData]:
    """Join state events with their offers into per-game lines."""
    events = _collect(state, "events")
    offers = _collect(state, "offers")

    odds: list[RawOddsData] = []
    for event_id, event in events.items():
        if not isinstance(event, dict):
            continue
        name = event.get("name") or event.get("eventName") or ""
        if len(name) < 3:
            continue

        split = _NAME_SPLIT.split(name, maxsplit=1)
        away = event.get("teamName1") or (split[0].strip() if split else "") or "Unknown"
        home = event.get("teamName2") or (split[1].strip() if len(split) > 1 else "") or "Unknown"
        if home == "Unknown" or away == "Unknown":
            continue

        values: dict[str, Any] = {}
        for offer in offers.values():
            if not isinstance(offer, dict) or str(offer.get("eventId")) != str(event_id):
                continue
            label = (offer.get("label") or offer.get("marketName") or "").lower()
            market = offer.get("marketTypeId")
            outcomes = [o for o in offer.get("outcomes") or [] if isinstance(o, dict)]

            if "moneyline" in label or "winner" in label or market == 1:
                for idx, outcome in enumerate(outcomes):
                    if outcome.get("oddsAmerican") is None:
                        continue
                    price = int(outcome["oddsAmerican"])
                    if idx == 0 or away in (outcome.get("label") or ""):
                        values.setdefault("away_moneyline", price)
                    else:
                        values["home_moneyline"] = price
            elif "spread" in label or "handicap" in label or market == 2:
                if len(outcomes) > 1 and outcomes[1].get("line") is not None:
                    values["spread"] = float(outcomes[1]["line"])
                    if outcomes[1].get("oddsAmerican") is not None:
                        values["spread_juice"] = int(outcomes[1]["oddsAmerican"])
            elif "total" in label or "over" in label or market == 3:
                for outcome in outcomes:
                    side = (outcome.get("label") or "").lower()
                    price = outcome.get("oddsAmerican")
                    if "over" in side and outcome.get("line") is not None:
                        values["over_under"] = float(outcome["line"])
                        if price is not None:
                            values["over_juice"] = int(price)
                    elif "under" in side and price is not None:
                        values["under_juice"] = int(price)

        odds.append(
            RawOddsData(
                external_game_id=str(event_id),
                home_team=home,
                away_team=away,
                game_date=parse_iso(event.get("startDate") or event.get("eventStartDate"))
                or utcnow(),
                **values,
            )
        )
    return odds


def parse_dom_game(teams: list[str], text: str) -> RawOddsData:
    """Best-effort line from the text of a rendered game card."""
    away, home = teams[0], teams[1]
    moneylines = _MONEYLINE.findall(text)
    spreads = _HALF_POINT.findall(text)
    total = _TOTAL.search(text)
    return RawOddsData(
        external_game_id=stable_id("dom", f"{away}-{home}"),
        home_team=home,
        away_team=away,
        game_date=utcnow(),
        away_moneyline=int(moneylines[0]) if moneylines else None,
        home_moneyline=int(moneylines[1]) if len(moneylines) > 1 else None,
        spread=float(spreads[0]) if spreads else None,
        over_under=float(total.group(1)) if total else None,
    )


class DraftKingsScraperAdapter(BaseSourceAdapter):
    type = SourceType.DRAFTKINGS_SCRAPE
    name = "DraftKings Scraper"

    max_requests = 4
    window_seconds = 60.0
    min_delay_seconds = 15.0

    navigation_timeout_ms = 60_000
    selector_timeout_ms = 15_000

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    async def fetch(
        self, source: SourceSnapshot, options: Optional[FetchOptions] = None
    ) -> FetchResult:
        odds = await self.fetch_odds(source, options)
        items = [odds_to_news_item(o, "dk", author="DraftKings Sportsbook") for o in odds]
        status = self.get_rate_limit_status()
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
        await self.rate_limiter.acquire()
        sport = config_sport(source.config, source.sport)
        url = f"{DK_BASE_URL}{SPORT_PATHS.get(sport, SPORT_PATHS[Sport.NFL])}"
        teams = NBA_TEAMS if sport == Sport.NBA else NFL_TEAMS

        page: Optional[Page] = None
        try:
            browser = await self._get_browser()
            context = await browser.new_context(
                user_agent=settings.scraper_user_agent,
                viewport={"width": 1920, "height": 1080},
                locale="en-US",
            )
            await context.add_init_script(_STEALTH_SCRIPT)
            page = await context.new_page()
            await page.route("**/*", _skip_heavy_resources)

            logger.info(f"-> {source.name}: navigating to {url}")
            await page.goto(url, wait_until="domcontentloaded", timeout=self.navigation_timeout_ms)
            try:
                await page.wait_for_selector(
                    '[class*="event"], [class*="sportsbook-event"], [class*="game"]',
                    timeout=self.selector_timeout_ms,
                )
            except PlaywrightError:
                logger.info("  no game elements found, continuing")
            await page.wait_for_timeout(2000)

            title = await page.title()
            html = await page.content()
            if is_blocked(title, html):
                logger.warning(f"DraftKings blocked the scrape of {url}")
                return []

            odds: list[RawOddsData] = []
            state = extract_initial_state(html)
            if state:
                odds = parse_games_from_state(state)
            if not odds:
                live_state = await page.evaluate("() => window.__INITIAL_STATE__ || null")
                if isinstance(live_state, dict):
                    odds = parse_games_from_state(live_state)
            if not odds:
                cards = await page.evaluate(_DOM_GAMES_SCRIPT, teams)
                odds = [parse_dom_game(card["teams"], card["text"]) for card in cards]
        except PlaywrightError as exc:
            raise FetchError(f"Failed to scrape DraftKings: {exc}") from exc
        finally:
            if page is not None:
                await page.context.close()

        if options and options.limit:
            odds = odds[: options.limit]
        logger.info(f"  + {len(odds)} game(s) with odds")
        return odds

    async def _get_browser(self) -> Browser:
        if self._browser is None:
            logger.info("Launching headless Chromium for DraftKings")
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=True,
                args=[
                    "--no-sandbox",
                    "--disable-dev-shm-usage",
                    "--disable-gpu",
                    "--disable-blink-features=AutomationControlled",
                ],
            )
        return self._browser

    async def dispose(self) -> None:
        """Close the shared browser. Safe to call when none was launched."""
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    def validate_config(self, config: Any) -> ValidationResult:
        invalid = self.config_errors(config)
        if invalid:
            return invalid
        if not config.get("sport") or not isinstance(config["sport"], str):
            return self.result(["sport is required (e.g., 'nfl', 'nba', 'mlb')"])
        return self.result(
            [],
            [
                "DraftKings scraping has strict rate limiting. "
                "Fetch interval should be at least 15 seconds."
            ],
        )

    async def test_connection(self, config: dict[str, Any]) -> bool:
        sport = config_sport(config, Sport.NFL)
        try:
            browser = await self._get_browser()
            page = await browser.new_page()
            try:
                await page.goto(
                    f"{DK_BASE_URL}{SPORT_PATHS.get(sport, SPORT_PATHS[Sport.NFL])}",
                    wait_until="domcontentloaded",
                    timeout=30_000,
                )
                content = await page.content()
            finally:
                await page.close()
        except PlaywrightError:
            return False
        return "draftkings" in content.lower() or "sportsbook" in content.lower()
