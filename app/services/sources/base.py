"""Shared contract, value types, and helpers for source adapters.

Every adapter normalizes its protocol-specific payload into ``RawNewsItem``
values. Adapters that also produce betting lines or final scores expose
``fetch_odds`` / ``fetch_results``; callers detect those through
``supports_odds`` / ``supports_results`` rather than by class.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Awaitable, Callable, Optional

import httpx

from app.config import settings
from app.errors import FetchError
from app.schemas.base import Sport
from app.schemas.news_items import NewsItemType
from app.schemas.sources import SourceType

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


def utcnow() -> datetime:
    """Naive UTC now, matching how timestamps are stored."""
    return datetime.now(UTC).replace(tzinfo=None)


@dataclass(frozen=True, slots=True)
class SourceSnapshot:
    """Detached view of a Source row handed to adapters."""

    id: int
    org_id: str
    name: str
    type: SourceType
    sport: Sport
    config: dict[str, Any]


@dataclass(frozen=True, slots=True)
class FetchOptions:
    since: Optional[datetime] = None
    limit: Optional[int] = None
    date: Optional[datetime] = None  # game date for date-keyed APIs


@dataclass(frozen=True, slots=True)
class RawNewsItem:
    external_id: str
    type: NewsItemType
    headline: str
    published_at: datetime
    content: Optional[str] = None
    url: Optional[str] = None
    image_url: Optional[str] = None
    author: Optional[str] = None
    raw_data: Optional[dict[str, Any]] = None


@dataclass(frozen=True, slots=True)
class RawOddsData:
    external_game_id: str
    home_team: str
    away_team: str
    game_date: datetime
    home_moneyline: Optional[int] = None
    away_moneyline: Optional[int] = None
    spread: Optional[float] = None
    spread_juice: Optional[int] = None
    over_under: Optional[float] = None
    over_juice: Optional[int] = None
    under_juice: Optional[int] = None


@dataclass(frozen=True, slots=True)
class RawGameResult:
    external_game_id: str
    home_team: str
    away_team: str
    game_date: datetime
    home_score: int
    away_score: int
    status: str = "FINAL"
    spread_winner: Optional[str] = None
    total_result: Optional[str] = None
    stats: Optional[dict[str, Any]] = None


@dataclass(slots=True)
class FetchResult:
    items: list[RawNewsItem]
    has_more: bool = False
    rate_limit_remaining: Optional[int] = None
    rate_limit_reset: Optional[datetime] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class RateLimitStatus:
    remaining: int
    limit: int
    reset_at: Optional[datetime]
    is_limited: bool


class RateLimiter:
    """Rolling-window request budget plus a minimum spacing between requests.

    ``acquire`` never raises: a caller that arrives too early waits until the
    request is allowed. Clock and sleep are injectable so tests can drive time.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        min_delay_seconds: float = 0.0,
        *,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.min_delay_seconds = min_delay_seconds
        self._clock: Clock = clock or time.monotonic
        self._sleep: Sleep = sleep or asyncio.sleep
        self._timestamps: list[float] = []
        self._last_request: Optional[float] = None
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        cutoff = now - self.window_seconds
        self._timestamps = [t for t in self._timestamps if t > cutoff]

    def wait_time(self) -> float:
        """Seconds until the next request would be allowed."""
        now = self._clock()
        self._prune(now)
        wait = 0.0
        if self._last_request is not None and self.min_delay_seconds > 0:
            wait = max(wait, self._last_request + self.min_delay_seconds - now)
        if len(self._timestamps) >= self.max_requests:
            wait = max(wait, self._timestamps[0] + self.window_seconds - now)
        return max(wait, 0.0)

    async def acquire(self) -> None:
        async with self._lock:
            while True:
                wait = self.wait_time()
                if wait <= 0:
                    break
                logger.debug(f"Rate limiter waiting {wait:.2f}s")
                await self._sleep(wait)
            now = self._clock()
            self._timestamps.append(now)
            self._last_request = now

    def status(self) -> RateLimitStatus:
        now = self._clock()
        self._prune(now)
        remaining = max(self.max_requests - len(self._timestamps), 0)
        reset_at = None
        if self._timestamps:
            seconds = self._timestamps[0] + self.window_seconds - now
            reset_at = utcnow() + timedelta(seconds=max(seconds, 0.0))
        return RateLimitStatus(
            remaining=remaining,
            limit=self.max_requests,
            reset_at=reset_at,
            is_limited=remaining == 0,
        )


class BaseSourceAdapter(ABC):
    """Common plumbing for adapters: rate limiting, HTTP, and validation helpers."""

    type: SourceType
    name: str

    # Budget defaults; subclasses override
    max_requests: int = 30
    window_seconds: float = 60.0
    min_delay_seconds: float = 0.0

    def __init__(
        self,
        *,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleep] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.rate_limiter = RateLimiter(
            self.max_requests,
            self.window_seconds,
            self.min_delay_seconds,
            clock=clock,
            sleep=sleep,
        )
        self._transport = transport
        self._remote_remaining: Optional[int] = None
        self._remote_reset: Optional[datetime] = None

    @abstractmethod
    async def fetch(
        self, source: SourceSnapshot, options: Optional[FetchOptions] = None
    ) -> FetchResult:
        """Fetch new items from the source."""

    @abstractmethod
    def validate_config(self, config: Any) -> ValidationResult:
        """Check a config blob before it is persisted."""

    async def test_connection(self, config: dict[str, Any]) -> bool:
        return True

    def get_rate_limit_status(self) -> RateLimitStatus:
        local = self.rate_limiter.status()
        if self._remote_remaining is None:
            return local
        remaining = min(local.remaining, self._remote_remaining)
        reset_at = self._remote_reset or local.reset_at
        return RateLimitStatus(
            remaining=remaining,
            limit=local.limit,
            reset_at=reset_at,
            is_limited=remaining <= 0,
        )

    def client(self, **headers: str) -> httpx.AsyncClient:
        """Build an HTTP client with the shared user agent and timeout."""
        base_headers = {"User-Agent": settings.scraper_user_agent}
        base_headers.update(headers)
        return httpx.AsyncClient(
            headers=base_headers,
            timeout=httpx.Timeout(settings.http_timeout_seconds),
            follow_redirects=True,
            transport=self._transport,
        )

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[dict[str, str]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Issue one rate-limited request, raising FetchError on failure."""
        await self.rate_limiter.acquire()
        try:
            async with self.client(**(headers or {})) as client:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FetchError(
                f"{self.name} request failed: HTTP {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"{self.name} request failed: {exc}") from exc

        self._record_remote_limits(response)
        return response

    async def request_json(self, method: str, url: str, **kwargs: Any) -> Any:
        response = await self.request(method, url, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            raise FetchError(f"{self.name} returned invalid JSON") from exc

    def _record_remote_limits(self, response: httpx.Response) -> None:
        remaining = response.headers.get("X-RateLimit-Remaining")
        if remaining is None or not remaining.isdigit():
            return
        self._remote_remaining = int(remaining)
        reset = response.headers.get("X-RateLimit-Reset")
        if reset and reset.isdigit():
            self._remote_reset = datetime.fromtimestamp(int(reset), UTC).replace(tzinfo=None)

    @staticmethod
    def config_errors(config: Any) -> Optional[ValidationResult]:
        if not isinstance(config, dict):
            return ValidationResult(valid=False, errors=["Configuration must be an object"])
        return None

    @staticmethod
    def result(errors: list[str], warnings: Optional[list[str]] = None) -> ValidationResult:
        return ValidationResult(valid=not errors, errors=errors, warnings=warnings or [])


def config_sport(config: dict[str, Any], default: Sport) -> Sport:
    """Sport named by a config blob ('nfl', 'NBA'), falling back to ``default``."""
    value = config.get("sport")
    if not isinstance(value, str) or not value:
        return default
    try:
        return Sport(value.upper())
    except ValueError:
        return default


def supports_odds(adapter: Any) -> bool:
    return callable(getattr(adapter, "fetch_odds", None))


def supports_results(adapter: Any) -> bool:
    return callable(getattr(adapter, "fetch_results", None))


# First matching group wins, so order matters.
_TYPE_KEYWORDS: list[tuple[NewsItemType, tuple[str, ...]]] = [
    (NewsItemType.TRADE, ("trade", "traded", "deal")),
    (NewsItemType.INJURY, ("injury", "injured", "out for", "day-to-day")),
    (NewsItemType.BREAKING, ("breaking", "just in", "developing")),
    (NewsItemType.BETTING_LINE, ("odds", "betting", "line")),
    (NewsItemType.GAME_RESULT, ("final", "score", "win", "defeat")),
    (NewsItemType.RUMOR, ("rumor", "reportedly", "sources say")),
    (NewsItemType.SCHEDULE, ("schedule", "upcoming", "matchup")),
]


def classify_news_type(headline: str, content: Optional[str] = None) -> NewsItemType:
    """Infer a news type from headline and body text."""
    text = f"{headline} {content or ''}".lower()
    for news_type, keywords in _TYPE_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return news_type
    return NewsItemType.ANALYSIS


def stable_id(prefix: str, key: str) -> str:
    """Short deterministic external id for items without one."""
    digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:16]
    return f"{prefix}-{digest}"


def strip_html(html: str) -> str:
    """Convert an HTML fragment to plain text with paragraph breaks."""
    if not html:
        return ""
    text = re.sub(r"<script[^>]*>[\s\S]*?</script>", "", html, flags=re.IGNORECASE)
    text = re.sub(r"<style[^>]*>[\s\S]*?</style>", "", text, flags=re.IGNORECASE)
    text = re.sub(r"</(p|div|br|h[1-6]|li|tr)>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<(br|hr)\s*/?>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    text = (
        text.replace("&nbsp;", " ")
        .replace("&amp;", "&")
        .replace("&lt;", "<")
        .replace("&gt;", ">")
        .replace("&quot;", '"')
        .replace("&#39;", "'")
        .replace("&apos;", "'")
    )
    text = re.sub(r"\n\s*\n", "\n\n", text)
    text = re.sub(r"[ \t]+", " ", text)
    return text.strip()


def parse_iso(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp to naive UTC, or None."""
    if not value or not isinstance(value, str):
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def within_window(published_at: datetime, options: Optional[FetchOptions]) -> bool:
    return not (options and options.since and published_at < options.since)


def _signed(value: float | int) -> str:
    if value > 0:
        return f"+{value:g}"
    return f"{value:g}"


def odds_to_news_item(
    odds: RawOddsData, prefix: str, author: Optional[str] = None
) -> RawNewsItem:
    """Render a betting line as a BETTING_LINE news item."""
    parts: list[str] = []
    if odds.spread is not None:
        if odds.spread < 0:
            parts.append(f"{odds.home_team} {_signed(odds.spread)}")
        elif odds.spread > 0:
            parts.append(f"{odds.away_team} {_signed(-odds.spread)}")
        else:
            parts.append(f"{odds.home_team} PK")
    if odds.over_under is not None:
        parts.append(f"O/U {odds.over_under:g}")
    if odds.home_moneyline is not None and odds.away_moneyline is not None:
        parts.append(
            f"ML: {odds.away_team} {_signed(odds.away_moneyline)} / "
            f"{odds.home_team} {_signed(odds.home_moneyline)}"
        )

    lines = " | ".join(parts) if parts else "Lines TBD"
    headline = f"{odds.away_team} @ {odds.home_team} - {lines}"
    content = (
        f"Game: {odds.away_team} at {odds.home_team}\n"
        f"Date: {odds.game_date.date().isoformat()}\n"
        f"Spread: {odds.spread if odds.spread is not None else 'N/A'}\n"
        f"Over/Under: {odds.over_under if odds.over_under is not None else 'N/A'}"
    )
    game_key = odds.external_game_id or stable_id(
        "game", f"{odds.home_team}-{odds.away_team}-{odds.game_date.isoformat()}"
    )

    return RawNewsItem(
        external_id=f"{prefix}-{game_key}",
        type=NewsItemType.BETTING_LINE,
        headline=headline,
        content=content,
        published_at=utcnow(),
        author=author,
        raw_data={
            "home_team": odds.home_team,
            "away_team": odds.away_team,
            "game_date": odds.game_date.isoformat(),
            "spread": odds.spread,
            "over_under": odds.over_under,
            "home_moneyline": odds.home_moneyline,
            "away_moneyline": odds.away_moneyline,
        },
    )
