"""CSS-selector driven website scraper."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from app.errors import FetchError
from app.schemas.sources import SourceType
from app.services.sources.base import (
    BaseSourceAdapter,
    FetchOptions,
    FetchResult,
    RawNewsItem,
    SourceSnapshot,
    ValidationResult,
    classify_news_type,
    stable_id,
    utcnow,
)
from app.services.sources.rss_adapter import is_valid_url

logger = logging.getLogger(__name__)

_HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
_CONTAINER_TAGS = ["article", "div", "li"]
_DATE_FORMATS = ("%B %d, %Y", "%b %d, %Y", "%m/%d/%Y", "%Y-%m-%d %H:%M", "%d %B %Y")


class ScraperAdapter(BaseSourceAdapter):
    type = SourceType.WEBSITE_SCRAPE
    name = "Website Scraper"

    max_requests = 12
    window_seconds = 60.0
    min_delay_seconds = 5.0

    async def fetch(
        self, source: SourceSnapshot, options: Optional[FetchOptions] = None
    ) -> FetchResult:
        config = source.config
        html = await self.fetch_page(config["url"])
        soup = BeautifulSoup(html, "html.parser")

        items = self.parse_items(soup, config, options)

        next_selector = (config.get("pagination") or {}).get("nextSelector")
        has_more = bool(next_selector and soup.select(next_selector))

        status = self.get_rate_limit_status()
        logger.info(f"-> {source.name}: scraped {len(items)} item(s)")
        return FetchResult(
            items=items,
            has_more=has_more,
            rate_limit_remaining=status.remaining,
            rate_limit_reset=status.reset_at,
        )

    async def fetch_page(self, url: str) -> str:
        response = await self.request(
            "GET",
            url,
            headers={"Accept": _HTML_ACCEPT, "Accept-Language": "en-US,en;q=0.5"},
        )
        return response.text

    def parse_items(
        self,
        soup: BeautifulSoup,
        config: dict[str, Any],
        options: Optional[FetchOptions] = None,
    ) -> list[RawNewsItem]:
        selectors = config.get("selectors") or {}
        container_selector = selectors.get("container")
        root: Any = soup.select_one(container_selector) if container_selector else soup
        if root is None:
            return []

        headline_elements = root.select(selectors["headline"])
        blocks: list[Tag] = []
        seen_blocks: set[int] = set()
        for headline_el in headline_elements:
            block = headline_el.find_parent(_CONTAINER_TAGS) or headline_el.parent
            if block is None or id(block) in seen_blocks:
                continue
            seen_blocks.add(id(block))
            blocks.append(block)

        max_items = config.get("maxItems")
        items: list[RawNewsItem] = []
        seen_ids: set[str] = set()
        for block in blocks:
            if options and options.limit and len(items) >= options.limit:
                break
            if max_items and len(items) >= max_items:
                break

            item = self.parse_element(block, selectors, config["url"])
            if item is None or item.external_id in seen_ids:
                continue
            if options and options.since and item.published_at < options.since:
                continue
            seen_ids.add(item.external_id)
            items.append(item)

        return items

    def parse_element(
        self, block: Tag, selectors: dict[str, Any], page_url: str
    ) -> Optional[RawNewsItem]:
        headline_el = block.select_one(selectors["headline"])
        if headline_el is None:
            return None
        headline = headline_el.get_text(strip=True)
        if not headline:
            return None

        content = _select_text(block, selectors.get("content"))

        url: Optional[str]
        if selectors.get("link"):
            url = _select_attr(block, selectors["link"], "href")
        else:
            url = _attr(headline_el, "href")
            if url is None:
                inner_link = headline_el.find("a")
                url = _attr(inner_link, "href") if isinstance(inner_link, Tag) else None
        if url and not url.startswith("http"):
            url = urljoin(page_url, url)

        published_at: Optional[datetime] = None
        date_text = _select_text(block, selectors.get("date"))
        if date_text:
            published_at = parse_date_text(date_text)

        image_selector = selectors.get("image") or "img"
        image_el = block.select_one(image_selector)
        image_url = None
        if image_el is not None:
            image_url = _attr(image_el, "src") or _attr(image_el, "data-src")
        if image_url and not image_url.startswith("http"):
            image_url = urljoin(page_url, image_url)

        key = url or f"{headline}-{date_text or ''}"
        return RawNewsItem(
            external_id=stable_id("scrape", key),
            type=classify_news_type(headline, content),
            headline=headline,
            content=content,
            url=url,
            image_url=image_url,
            published_at=published_at or utcnow(),
            author=_select_text(block, selectors.get("author")),
            raw_data={"html": str(block)[:5000]},
        )

    def validate_config(self, config: Any) -> ValidationResult:
        invalid = self.config_errors(config)
        if invalid:
            return invalid

        errors: list[str] = []
        warnings: list[str] = []

        url = config.get("url")
        if not url or not isinstance(url, str):
            errors.append("url is required and must be a string")
        elif not is_valid_url(url):
            errors.append("url must be a valid URL")

        selectors = config.get("selectors")
        if not isinstance(selectors, dict):
            errors.append("selectors object is required")
        else:
            headline = selectors.get("headline")
            if not headline or not isinstance(headline, str):
                errors.append("selectors.headline is required and must be a CSS selector string")
            if not selectors.get("content"):
                warnings.append("selectors.content not specified - only headlines will be captured")
            if not selectors.get("date"):
                warnings.append("selectors.date not specified - current time will be used")

        max_items = config.get("maxItems")
        if max_items is not None and (
            isinstance(max_items, bool) or not isinstance(max_items, int) or max_items < 1
        ):
            errors.append("maxItems must be a positive number")

        return self.result(errors, warnings)

    async def test_connection(self, config: dict[str, Any]) -> bool:
        try:
            html = await self.fetch_page(config["url"])
        except FetchError:
            return False
        soup = BeautifulSoup(html, "html.parser")
        return bool(soup.select(config["selectors"]["headline"]))


def parse_date_text(value: str) -> Optional[datetime]:
    """Parse a scraped date string to naive UTC, or None."""
    value = value.strip()
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        dt = None
    if dt is None:
        try:
            dt = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            dt = None
    if dt is None:
        for fmt in _DATE_FORMATS:
            try:
                dt = datetime.strptime(value, fmt)
                break
            except ValueError:
                continue
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def _attr(el: Optional[Tag], name: str) -> Optional[str]:
    if el is None:
        return None
    value = el.get(name)
    if isinstance(value, list):
        value = " ".join(value)
    return value or None


def _select_attr(block: Tag, selector: str, name: str) -> Optional[str]:
    return _attr(block.select_one(selector), name)


def _select_text(block: Tag, selector: Optional[str]) -> Optional[str]:
    if not selector:
        return None
    el = block.select_one(selector)
    if el is None:
        return None
    return el.get_text(" ", strip=True) or None
