"""Static table from source type to adapter instance and form metadata."""

from __future__ import annotations

import logging
from typing import Any, Optional

from app.errors import ConfigValidationError
from app.models.sources import ConfigField, ConfigFieldOption, SourceTypeInfo
from app.schemas.sources import SourceType
from app.services.sources.base import BaseSourceAdapter, supports_odds, supports_results
from app.services.sources.draftkings_adapter import DraftKingsAdapter
from app.services.sources.draftkings_scraper import DraftKingsScraperAdapter
from app.services.sources.espn_adapter import EspnAdapter
from app.services.sources.rss_adapter import RssAdapter
from app.services.sources.scraper_adapter import ScraperAdapter
from app.services.sources.sportsgrid_adapter import SportsGridAdapter

logger = logging.getLogger(__name__)

ADAPTERS: dict[SourceType, BaseSourceAdapter] = {
    SourceType.RSS_FEED: RssAdapter(),
    SourceType.WEBSITE_SCRAPE: ScraperAdapter(),
    SourceType.ESPN_API: EspnAdapter(),
    SourceType.SPORTSGRID_API: SportsGridAdapter(),
    SourceType.DRAFTKINGS_API: DraftKingsAdapter(),
    SourceType.DRAFTKINGS_SCRAPE: DraftKingsScraperAdapter(),
}


def get_adapter(source_type: SourceType) -> Optional[BaseSourceAdapter]:
    return ADAPTERS.get(source_type)


def get_adapter_or_raise(source_type: SourceType) -> BaseSourceAdapter:
    adapter = get_adapter(source_type)
    if adapter is None:
        raise ValueError(f"No adapter found for source type: {source_type}")
    return adapter


def validate_source_config(source_type: SourceType, config: Any) -> list[str]:
    """Validate a config blob for a source type.

    Returns:
        Non-blocking warnings.

    Raises:
        ConfigValidationError: if the adapter rejects the config.
    """
    result = get_adapter_or_raise(source_type).validate_config(config)
    if not result.valid:
        raise ConfigValidationError(result.errors, result.warnings)
    return result.warnings


async def dispose_adapters() -> None:
    """Release adapter-held resources (headless browsers) on shutdown."""
    for source_type, adapter in ADAPTERS.items():
        dispose = getattr(adapter, "dispose", None)
        if not callable(dispose):
            continue
        try:
            await dispose()
        except Exception as exc:
            logger.warning(f"Failed to dispose {source_type.value} adapter: {exc}")


_SPORT_OPTIONS = [
    ConfigFieldOption(value="nfl", label="NFL Football"),
    ConfigFieldOption(value="nba", label="NBA Basketball"),
    ConfigFieldOption(value="mlb", label="MLB Baseball"),
    ConfigFieldOption(value="nhl", label="NHL Hockey"),
    ConfigFieldOption(value="soccer", label="Soccer"),
]

_MAX_ITEMS_HELP = "Maximum number of items to fetch per run"

_TYPE_DETAILS: dict[SourceType, dict[str, Any]] = {
    SourceType.RSS_FEED: {
        "description": "Fetch news from RSS or Atom feeds",
        "recommended_refresh_interval": 30,
        "config_fields": [
            ConfigField(
                name="feedUrl",
                label="Feed URL",
                type="url",
                required=True,
                placeholder="https://example.com/feed.xml",
                help_text="The URL of the RSS or Atom feed",
            ),
            ConfigField(
                name="maxItems",
                label="Max Items",
                type="number",
                placeholder="50",
                help_text=_MAX_ITEMS_HELP,
                default_value=50,
            ),
        ],
    },
    SourceType.WEBSITE_SCRAPE: {
        "description": "Scrape news from websites using CSS selectors",
        "recommended_refresh_interval": 60,
        "config_fields": [
            ConfigField(
                name="url",
                label="Page URL",
                type="url",
                required=True,
                placeholder="https://example.com/news",
                help_text="The URL of the page to scrape",
            ),
            ConfigField(
                name="selectors.container",
                label="Container Selector",
                type="text",
                placeholder=".news-list",
                help_text="CSS selector for the container holding news items",
            ),
            ConfigField(
                name="selectors.headline",
                label="Headline Selector",
                type="text",
                required=True,
                placeholder="h2.title, .headline",
                help_text="CSS selector for the headline/title",
            ),
            ConfigField(
                name="selectors.content",
                label="Content Selector",
                type="text",
                placeholder=".summary, .excerpt",
                help_text="CSS selector for the content/description",
            ),
            ConfigField(
                name="selectors.date",
                label="Date Selector",
                type="text",
                placeholder=".date, time",
                help_text="CSS selector for the publication date",
            ),
            ConfigField(
                name="selectors.link",
                label="Link Selector",
                type="text",
                placeholder="a.read-more",
                help_text="CSS selector for the article link",
            ),
            ConfigField(
                name="maxItems",
                label="Max Items",
                type="number",
                placeholder="25",
                help_text=_MAX_ITEMS_HELP,
                default_value=25,
            ),
        ],
    },
    SourceType.ESPN_API: {
        "description": "Fetch sports news and scores from ESPN",
        "recommended_refresh_interval": 30,
        "config_fields": [
            ConfigField(
                name="section",
                label="Section",
                type="select",
                required=True,
                help_text="What type of content to fetch",
                options=[
                    ConfigFieldOption(value="news", label="News Articles"),
                    ConfigFieldOption(value="scores", label="Game Scores"),
                ],
                default_value="news",
            ),
            ConfigField(
                name="sport",
                label="Sport Override",
                type="text",
                placeholder="football",
                help_text="Override the sport (uses source sport by default)",
            ),
            ConfigField(
                name="league",
                label="League Override",
                type="text",
                placeholder="nfl",
                help_text="Override the league (uses default for sport)",
            ),
        ],
    },
    SourceType.SPORTSGRID_API: {
        "description": "Fetch betting lines and final scores from the SportsGrid games API",
        "recommended_refresh_interval": 10,
        "config_fields": [
            ConfigField(
                name="sport",
                label="Sport",
                type="text",
                placeholder="NFL",
                help_text="SportsGrid sport code (uses source sport by default)",
            ),
            ConfigField(
                name="apiToken",
                label="API Token",
                type="text",
                help_text="Overrides the server-wide SPORTSGRID_API_TOKEN",
            ),
        ],
    },
    SourceType.DRAFTKINGS_API: {
        "description": "Fetch betting odds from DraftKings Sportsbook API (may be geo-restricted)",
        "recommended_refresh_interval": 15,
        "config_fields": [
            ConfigField(
                name="sport",
                label="Sport",
                type="select",
                required=True,
                help_text="The sport to fetch odds for",
                options=_SPORT_OPTIONS,
                default_value="nfl",
            ),
            ConfigField(
                name="league",
                label="League",
                type="text",
                placeholder="42648",
                help_text="DraftKings league id (uses the sport's main league by default)",
            ),
        ],
    },
    SourceType.DRAFTKINGS_SCRAPE: {
        "description": "Scrape betting odds from DraftKings website using browser automation",
        "recommended_refresh_interval": 15,
        "config_fields": [
            ConfigField(
                name="sport",
                label="Sport",
                type="select",
                required=True,
                help_text="The sport to fetch odds for",
                options=_SPORT_OPTIONS,
                default_value="nfl",
            ),
        ],
    },
}

SOURCE_TYPE_INFO: dict[SourceType, SourceTypeInfo] = {
    source_type: SourceTypeInfo(
        type=source_type,
        name=ADAPTERS[source_type].name,
        supports_odds=supports_odds(ADAPTERS[source_type]),
        supports_results=supports_results(ADAPTERS[source_type]),
        **details,
    )
    for source_type, details in _TYPE_DETAILS.items()
}


def get_all_source_type_info() -> list[SourceTypeInfo]:
    return list(SOURCE_TYPE_INFO.values())
