"""RSS/Atom feed adapter."""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any, Optional
from urllib.parse import urlparse

import feedparser  # type: ignore[import-untyped]

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
    strip_html,
    utcnow,
)

logger = logging.getLogger(__name__)

_FEED_ACCEPT = "application/rss+xml, application/atom+xml, application/xml, text/xml, */*"


def is_valid_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class RssAdapter(BaseSourceAdapter):
    type = SourceType.RSS_FEED
    name = "RSS Feed"

    max_requests = 30
    window_seconds = 60.0

    async def fetch(
        self, source: SourceSnapshot, options: Optional[FetchOptions] = None
    ) -> FetchResult:
        feed_url = source.config.get("feedUrl", "")
        max_items = source.config.get("maxItems")

        entries, feed_meta = await self.fetch_feed(feed_url)

        items: list[RawNewsItem] = []
        seen: set[str] = set()
        for entry in entries:
            if options and options.limit and len(items) >= options.limit:
                break
            if max_items and len(items) >= max_items:
                break

            item = self.parse_entry(entry)
            if item is None or item.external_id in seen:
                continue
            if options and options.since and item.published_at < options.since:
                continue
            seen.add(item.external_id)
            items.append(item)

        logger.info(f"-> {source.name}: {len(items)} item(s) from {len(entries)} entries")
        return FetchResult(items=items, has_more=False, metadata=feed_meta)

    async def fetch_feed(self, feed_url: str) -> tuple[list[Any], dict[str, Any]]:
        response = await self.request("GET", feed_url, headers={"Accept": _FEED_ACCEPT})
        feed = await asyncio.to_thread(feedparser.parse, response.content)

        if feed.bozo and not feed.entries:
            raise FetchError(f"Failed to parse RSS feed: {feed.bozo_exception}")
        if feed.bozo:
            logger.warning(f"Feed parse warning for {feed_url}: {feed.bozo_exception}")

        meta = {
            "feed_title": feed.feed.get("title"),
            "feed_link": feed.feed.get("link"),
            "last_build_date": feed.feed.get("updated"),
        }
        return list(feed.entries), meta

    def parse_entry(self, entry: Any) -> Optional[RawNewsItem]:
        title = entry.get("title") or ""
        link = entry.get("link") or ""
        if not title and not link:
            return None

        published_at = _parse_published_date(entry)
        key = entry.get("id") or link or f"{title}-{entry.get('published', '')}"

        raw_html = ""
        if entry.get("content"):
            raw_html = entry["content"][0].get("value", "")
        if not raw_html:
            raw_html = entry.get("summary", "")
        content = strip_html(raw_html)

        return RawNewsItem(
            external_id=stable_id("rss", key),
            type=classify_news_type(title, content),
            headline=title or "Untitled",
            content=content or None,
            url=link or None,
            image_url=_extract_image_url(entry, raw_html),
            published_at=published_at,
            author=entry.get("author") or None,
        )

    def validate_config(self, config: Any) -> ValidationResult:
        invalid = self.config_errors(config)
        if invalid:
            return invalid

        errors: list[str] = []
        feed_url = config.get("feedUrl")
        if not feed_url or not isinstance(feed_url, str):
            errors.append("feedUrl is required and must be a string")
        elif not is_valid_url(feed_url):
            errors.append("feedUrl must be a valid URL")

        max_items = config.get("maxItems")
        if max_items is not None and (
            isinstance(max_items, bool) or not isinstance(max_items, int) or max_items < 1
        ):
            errors.append("maxItems must be a positive number")

        return self.result(errors)

    async def test_connection(self, config: dict[str, Any]) -> bool:
        try:
            entries, _ = await self.fetch_feed(config.get("feedUrl", ""))
        except FetchError:
            return False
        return len(entries) > 0


def _parse_published_date(entry: Any) -> datetime:
    """Return naive UTC publish time, or now when the feed omits it."""
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if parsed:
        try:
            return datetime(*parsed[:6])
        except (TypeError, ValueError):
            pass

    published = entry.get("published", entry.get("pubDate", ""))
    if published:
        try:
            dt = parsedate_to_datetime(published)
            if dt.tzinfo is not None:
                dt = dt.astimezone(UTC).replace(tzinfo=None)
            return dt
        except (TypeError, ValueError):
            pass

    return utcnow()


def _extract_image_url(entry: Any, raw_html: str) -> Optional[str]:
    for media in entry.get("media_content", []):
        if media.get("url"):
            return media["url"]
    thumbnails = entry.get("media_thumbnail", [])
    if thumbnails and thumbnails[0].get("url"):
        return thumbnails[0]["url"]
    match = re.search(r"<img[^>]+src=[\"']([^\"']+)[\"']", raw_html, re.IGNORECASE)
    return match.group(1) if match else None
