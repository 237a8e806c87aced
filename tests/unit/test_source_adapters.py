"""Unit tests for source adapters, parsers, and the adapter registry."""

from datetime import datetime

import httpx
import pytest

from app.errors import ConfigValidationError, FetchError
from app.schemas.base import Sport
from app.schemas.news_items import NewsItemType
from app.schemas.sources import SourceType
from app.services.sources.base import (
    FetchOptions,
    RateLimiter,
    RawOddsData,
    SourceSnapshot,
    classify_news_type,
    odds_to_news_item,
    parse_iso,
    strip_html,
)
from app.services.sources.draftkings_adapter import DraftKingsAdapter, parse_event
from app.services.sources.draftkings_scraper import (
    extract_initial_state,
    is_blocked,
    parse_games_from_state,
)
from app.services.sources.espn_adapter import parse_article, parse_game_as_news
from app.services.sources.registry import (
    get_all_source_type_info,
    validate_source_config,
)
from app.services.sources.rss_adapter import RssAdapter
from app.services.sources.sportsgrid_adapter import (
    parse_game_to_result,
    parse_line,
    parse_total,
    spread_winner,
    total_result,
)

FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Test Feed</title>
    <link>https://example.com</link>
    <item>
      <title>Chiefs trade for veteran receiver</title>
      <link>https://example.com/a</link>
      <guid>a-1</guid>
      <pubDate>Mon, 14 Oct 2024 15:00:00 GMT</pubDate>
      <description>&lt;p&gt;Kansas City made a deal.&lt;/p&gt;</description>
    </item>
    <item>
      <title>Chiefs trade for veteran receiver (updated)</title>
      <link>https://example.com/a</link>
      <guid>a-1</guid>
      <pubDate>Mon, 14 Oct 2024 16:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Film study: the zone defense</title>
      <link>https://example.com/b</link>
      <guid>b-1</guid>
      <pubDate>Sun, 13 Oct 2024 09:30:00 GMT</pubDate>
    </item>
    <item>
      <title>Preseason notebook</title>
      <link>https://example.com/c</link>
      <guid>c-1</guid>
      <pubDate>Sun, 01 Sep 2024 09:30:00 GMT</pubDate>
    </item>
  </channel>
</rss>
"""


def _snapshot(config: dict) -> SourceSnapshot:
    return SourceSnapshot(
        id=1,
        org_id="default",
        name="Test Feed",
        type=SourceType.RSS_FEED,
        sport=Sport.NFL,
        config=config,
    )


def _feed_transport(status_code: int = 200, body: str = FEED) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            status_code,
            content=body.encode("utf-8"),
            headers={"Content-Type": "application/rss+xml"},
        )

    return httpx.MockTransport(handler)


class FakeClock:
    """Monotonic clock that only moves when the limiter sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class TestRateLimiter:
    """Tests for the rolling-window rate limiter."""

    @pytest.mark.asyncio
    async def test_waits_when_window_is_full(self) -> None:
        """A third request inside a two-request window waits out the window."""
        clock = FakeClock()
        limiter = RateLimiter(2, 10.0, clock=clock, sleep=clock.sleep)

        await limiter.acquire()
        await limiter.acquire()
        assert clock.sleeps == []

        await limiter.acquire()
        assert clock.sleeps == [10.0]

    @pytest.mark.asyncio
    async def test_min_delay_spaces_requests(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(10, 60.0, min_delay_seconds=6.0, clock=clock, sleep=clock.sleep)

        await limiter.acquire()
        await limiter.acquire()

        assert clock.sleeps == [6.0]

    @pytest.mark.asyncio
    async def test_status_reports_remaining_budget(self) -> None:
        clock = FakeClock()
        limiter = RateLimiter(3, 60.0, clock=clock, sleep=clock.sleep)

        assert limiter.status().remaining == 3
        assert limiter.status().reset_at is None

        await limiter.acquire()
        await limiter.acquire()
        await limiter.acquire()

        status = limiter.status()
        assert status.remaining == 0
        assert status.is_limited is True
        assert status.reset_at is not None


class TestClassifyNewsType:
    """Tests for keyword-based news type classification."""

    def test_trade(self) -> None:
        assert classify_news_type("Lakers trade for star guard") == NewsItemType.TRADE

    def test_injury_from_content(self) -> None:
        assert (
            classify_news_type("Roster update", "The quarterback is out for the season")
            == NewsItemType.INJURY
        )

    def test_trade_takes_precedence_over_injury(self) -> None:
        """Earlier keyword groups win when several match."""
        assert classify_news_type("Injured forward traded to Boston") == NewsItemType.TRADE

    def test_betting(self) -> None:
        assert classify_news_type("Odds shift ahead of Sunday") == NewsItemType.BETTING_LINE

    def test_default_is_analysis(self) -> None:
        assert classify_news_type("Film study: the zone defense") == NewsItemType.ANALYSIS


class TestHelpers:
    """Tests for shared adapter helpers."""

    def test_strip_html(self) -> None:
        html = "<p>First &amp; foremost</p><script>alert(1)</script><p>Second</p>"
        assert strip_html(html) == "First & foremost\nSecond"

    def test_strip_html_empty(self) -> None:
        assert strip_html("") == ""

    def test_parse_iso_normalizes_to_naive_utc(self) -> None:
        assert parse_iso("2024-10-14T15:00:00Z") == datetime(2024, 10, 14, 15, 0)
        assert parse_iso("2024-10-14T11:00:00-04:00") == datetime(2024, 10, 14, 15, 0)

    def test_parse_iso_rejects_garbage(self) -> None:
        assert parse_iso("not a date") is None
        assert parse_iso(None) is None

    def test_odds_headline(self) -> None:
        odds = RawOddsData(
            external_game_id="g1",
            home_team="Chiefs",
            away_team="Bills",
            game_date=datetime(2024, 10, 20, 20, 25),
            home_moneyline=-180,
            away_moneyline=150,
            spread=-3.5,
            over_under=47.5,
        )

        item = odds_to_news_item(odds, "dk")

        assert item.type == NewsItemType.BETTING_LINE
        assert item.external_id == "dk-g1"
        assert item.headline == (
            "Bills @ Chiefs - Chiefs -3.5 | O/U 47.5 | ML: Bills +150 / Chiefs -180"
        )
        assert "Date: 2024-10-20" in (item.content or "")

    def test_odds_headline_without_lines(self) -> None:
        odds = RawOddsData(
            external_game_id="g2",
            home_team="Chiefs",
            away_team="Bills",
            game_date=datetime(2024, 10, 20),
        )
        assert odds_to_news_item(odds, "dk").headline == "Bills @ Chiefs - Lines TBD"


class TestRssAdapter:
    """Tests for the RSS adapter against a mocked transport."""

    @pytest.mark.asyncio
    async def test_fetch_parses_and_dedupes(self) -> None:
        adapter = RssAdapter(transport=_feed_transport())

        result = await adapter.fetch(_snapshot({"feedUrl": "https://example.com/feed.xml"}))

        headlines = [item.headline for item in result.items]
        assert headlines == [
            "Chiefs trade for veteran receiver",
            "Film study: the zone defense",
            "Preseason notebook",
        ]
        first = result.items[0]
        assert first.type == NewsItemType.TRADE
        assert first.content == "Kansas City made a deal."
        assert first.url == "https://example.com/a"
        assert first.published_at == datetime(2024, 10, 14, 15, 0)
        assert result.metadata["feed_title"] == "Test Feed"

    @pytest.mark.asyncio
    async def test_fetch_honours_since_and_max_items(self) -> None:
        adapter = RssAdapter(transport=_feed_transport())
        source = _snapshot({"feedUrl": "https://example.com/feed.xml", "maxItems": 5})

        result = await adapter.fetch(source, FetchOptions(since=datetime(2024, 10, 1)))
        assert len(result.items) == 2

        capped = _snapshot({"feedUrl": "https://example.com/feed.xml", "maxItems": 1})
        result = await adapter.fetch(capped)
        assert len(result.items) == 1

    @pytest.mark.asyncio
    async def test_http_error_raises_fetch_error(self) -> None:
        adapter = RssAdapter(transport=_feed_transport(status_code=503, body="down"))

        with pytest.raises(FetchError) as exc_info:
            await adapter.fetch(_snapshot({"feedUrl": "https://example.com/feed.xml"}))

        assert exc_info.value.status_code == 503

    def test_validate_config(self) -> None:
        adapter = RssAdapter()
        assert adapter.validate_config({"feedUrl": "https://example.com/feed.xml"}).valid
        assert adapter.validate_config({}).errors == [
            "feedUrl is required and must be a string"
        ]
        assert adapter.validate_config({"feedUrl": "ftp:/nope"}).errors == [
            "feedUrl must be a valid URL"
        ]
        assert not adapter.validate_config(
            {"feedUrl": "https://example.com/feed.xml", "maxItems": 0}
        ).valid
        assert not adapter.validate_config(["not", "a", "dict"]).valid


class TestEspnParsing:
    """Tests for ESPN article and scoreboard parsing."""

    def test_parse_article(self) -> None:
        item = parse_article(
            {
                "id": 42,
                "headline": "Star receiver injured in practice",
                "description": "He is day-to-day.",
                "published": "2024-10-14T15:00:00Z",
                "links": {"web": {"href": "https://espn.com/a"}},
                "images": [{"url": "https://espn.com/a.jpg"}],
            }
        )
        assert item is not None
        assert item.external_id == "espn-42"
        assert item.type == NewsItemType.INJURY
        assert item.url == "https://espn.com/a"
        assert item.image_url == "https://espn.com/a.jpg"

    def test_parse_article_requires_headline(self) -> None:
        assert parse_article({"id": 1}) is None

    def _event(self, status: str, home_score: str, away_score: str) -> dict:
        return {
            "id": "401",
            "name": "Buffalo Bills at Kansas City Chiefs",
            "date": "2024-10-20T20:25Z",
            "status": {"type": {"name": status, "detail": "Sun 4:25 PM"}},
            "competitions": [
                {
                    "competitors": [
                        {
                            "homeAway": "home",
                            "score": home_score,
                            "team": {"displayName": "Kansas City Chiefs"},
                        },
                        {
                            "homeAway": "away",
                            "score": away_score,
                            "team": {"displayName": "Buffalo Bills"},
                        },
                    ]
                }
            ],
        }

    def test_final_game_headline(self) -> None:
        item = parse_game_as_news(self._event("STATUS_FINAL", "24", "27"))
        assert item is not None
        assert item.type == NewsItemType.GAME_RESULT
        assert item.headline == "Buffalo Bills defeats Kansas City Chiefs 27-24"
        assert item.external_id == "espn-game-401"

    def test_scheduled_game_headline(self) -> None:
        item = parse_game_as_news(self._event("STATUS_SCHEDULED", "0", "0"))
        assert item is not None
        assert item.type == NewsItemType.SCHEDULE
        assert item.headline == "Buffalo Bills @ Kansas City Chiefs - Sun 4:25 PM"


class TestDraftKingsParsing:
    """Tests for DraftKings gateway and embedded-state parsing."""

    def test_parse_event(self) -> None:
        odds = parse_event(
            {
                "eventId": "123",
                "name": "Buffalo Bills @ Kansas City Chiefs",
                "startDate": "2024-10-20T20:25:00Z",
                "offers": [
                    {
                        "label": "Moneyline",
                        "outcomes": [{"oddsAmerican": "+150"}, {"oddsAmerican": "−180"}],
                    },
                    {
                        "label": "Spread",
                        "outcomes": [
                            {"line": 3.5, "oddsAmerican": "-110"},
                            {"line": -3.5, "oddsAmerican": "-110"},
                        ],
                    },
                    {
                        "label": "Total",
                        "outcomes": [
                            {"line": 47.5, "oddsAmerican": "-105"},
                            {"line": 47.5, "oddsAmerican": "-115"},
                        ],
                    },
                ],
            }
        )
        assert odds is not None
        assert odds.away_team == "Buffalo Bills"
        assert odds.home_team == "Kansas City Chiefs"
        assert odds.away_moneyline == 150
        assert odds.home_moneyline == -180
        assert odds.spread == -3.5
        assert odds.over_under == 47.5
        assert odds.over_juice == -105
        assert odds.under_juice == -115
        assert odds.game_date == datetime(2024, 10, 20, 20, 25)

    def test_parse_event_requires_id_and_name(self) -> None:
        assert parse_event({"name": "A @ B"}) is None

    @pytest.mark.parametrize(
        "name, away, home",
        [
            ("Denver Broncos @ Kansas City Chiefs", "Denver Broncos", "Kansas City Chiefs"),
            ("Cleveland Browns vs Baltimore Ravens", "Cleveland Browns", "Baltimore Ravens"),
            ("Nevada v. Villanova", "Nevada", "Villanova"),
        ],
    )
    def test_parse_event_keeps_team_names_containing_separators(self, name, away, home) -> None:
        odds = parse_event({"eventId": "9", "name": name})
        assert odds is not None
        assert (odds.away_team, odds.home_team) == (away, home)

    @pytest.mark.asyncio
    async def test_fetch_requests_configured_sport_and_league(self) -> None:
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(request.url.path)
            return httpx.Response(
                200, json={"events": [{"eventId": "1", "name": "Denver Nuggets @ Boston Celtics"}]}
            )

        source = SourceSnapshot(
            id=7,
            org_id="default",
            name="DK",
            type=SourceType.DRAFTKINGS_API,
            sport=Sport.NFL,
            config={"sport": "nba"},
        )
        result = await DraftKingsAdapter(transport=httpx.MockTransport(handler)).fetch(source)
        await DraftKingsAdapter(transport=httpx.MockTransport(handler)).fetch_odds(
            _snapshot({"sport": "nba", "league": "12345"})
        )

        assert requested[0].endswith("/leagues/42648/events")
        assert requested[1].endswith("/leagues/12345/events")
        assert result.items[0].headline.startswith("Denver Nuggets")

    def test_validate_config_checks_sport_and_league(self) -> None:
        adapter = DraftKingsAdapter()

        assert adapter.validate_config({"sport": "nba", "league": "42648"}).valid
        assert not adapter.validate_config({"sport": "cricket"}).valid
        assert not adapter.validate_config({"sport": "nfl", "league": "nfl"}).valid

    def test_extract_initial_state_handles_braces_in_strings(self) -> None:
        html = (
            '<script>window.__INITIAL_STATE__ = {"note": "a } b {", '
            '"events": {"1": {"name": "Bills @ Chiefs"}}};</script>'
        )
        state = extract_initial_state(html)
        assert state == {"note": "a } b {", "events": {"1": {"name": "Bills @ Chiefs"}}}

    def test_extract_initial_state_missing(self) -> None:
        assert extract_initial_state("<html></html>") is None

    def test_parse_games_from_state(self) -> None:
        state = {
            "eventGroups": {
                "events": {"1": {"name": "Bills @ Chiefs", "startDate": "2024-10-20T20:25:00Z"}},
                "offers": {
                    "o1": {
                        "eventId": "1",
                        "label": "Moneyline",
                        "outcomes": [
                            {"label": "Bills", "oddsAmerican": 150},
                            {"label": "Chiefs", "oddsAmerican": -180},
                        ],
                    },
                    "o2": {
                        "eventId": 1,
                        "label": "Spread",
                        "outcomes": [
                            {"line": 3.5, "oddsAmerican": -110},
                            {"line": -3.5, "oddsAmerican": -110},
                        ],
                    },
                    "o3": {
                        "eventId": "1",
                        "label": "Total",
                        "outcomes": [
                            {"label": "Over", "line": 47.5, "oddsAmerican": -105},
                            {"label": "Under", "line": 47.5, "oddsAmerican": -115},
                        ],
                    },
                },
            }
        }

        games = parse_games_from_state(state)

        assert len(games) == 1
        game = games[0]
        assert (game.away_team, game.home_team) == ("Bills", "Chiefs")
        assert (game.away_moneyline, game.home_moneyline) == (150, -180)
        assert game.spread == -3.5
        assert game.spread_juice == -110
        assert (game.over_under, game.over_juice, game.under_juice) == (47.5, -105, -115)

    def test_is_blocked(self) -> None:
        assert is_blocked("Access Denied", "") is True
        assert is_blocked("Sportsbook", '<div id="px-captcha"></div>') is True
        assert is_blocked("Sportsbook", "<div>lines</div>") is False


class TestSportsGridParsing:
    """Tests for SportsGrid line parsing and settlement."""

    def test_parse_line(self) -> None:
        assert parse_line("+125") == 125.0
        assert parse_line("-3.5") == -3.5
        assert parse_line("") is None
        assert parse_line(None) is None

    def test_parse_total(self) -> None:
        assert parse_total("U 235.5") == 235.5
        assert parse_total(None) is None

    def test_spread_winner(self) -> None:
        assert spread_winner(24, 20, -3.5) == "HOME"
        assert spread_winner(21, 24, -3.5) == "AWAY"
        assert spread_winner(24, 21, -3.0) == "PUSH"
        assert spread_winner(24, 21, None) is None

    def test_total_result(self) -> None:
        assert total_result(24, 20, 47.5) == "UNDER"
        assert total_result(30, 20, 47.5) == "OVER"
        assert total_result(27, 20, 47.0) == "PUSH"

    def test_parse_game_to_result(self) -> None:
        game = {
            "key": "sg-1",
            "home_full_name": "Kansas City Chiefs",
            "away_full_name": "Buffalo Bills",
            "scheduled": "2024-10-20T20:25:00Z",
            "final": True,
            "home_score": "27",
            "away_score": "24",
            "home_spread_point": "-3.5",
            "home_total_point": "O 47.5",
        }

        result = parse_game_to_result(game)

        assert result is not None
        assert result.status == "FINAL"
        assert result.spread_winner == "AWAY"
        assert result.total_result == "OVER"

    def test_unfinished_game_has_no_result(self) -> None:
        game = {"home_full_name": "A", "away_full_name": "B", "final": False}
        assert parse_game_to_result(game) is None


class TestRegistry:
    """Tests for adapter lookup and config validation."""

    def test_invalid_config_raises(self) -> None:
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_source_config(SourceType.RSS_FEED, {"feedUrl": "not a url"})
        assert exc_info.value.errors == ["feedUrl must be a valid URL"]

    def test_warnings_are_returned(self) -> None:
        warnings = validate_source_config(SourceType.SPORTSGRID_API, {"sport": "NFL"})
        assert len(warnings) == 1

    def test_every_type_is_described(self) -> None:
        info = {entry.type: entry for entry in get_all_source_type_info()}
        assert set(info) == set(SourceType)
        assert info[SourceType.SPORTSGRID_API].supports_odds is True
        assert info[SourceType.SPORTSGRID_API].supports_results is True
        assert info[SourceType.RSS_FEED].supports_odds is False
