"""YouTube Data API v3 search and video metadata persistence."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

import httpx
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.errors import FetchError
from app.schemas.base import Sport
from app.schemas.youtube_videos import YouTubeVideo
from app.services.sources.base import parse_iso, utcnow

logger = logging.getLogger(__name__)

YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"
MAX_RESULTS_PER_REQUEST = 50

SPORT_QUERY_TEMPLATES: dict[Sport, list[str]] = {
    Sport.NFL: ["NFL", "football", "touchdown", "quarterback"],
    Sport.NBA: ["NBA", "basketball", "slam dunk", "three pointer"],
    Sport.MLB: ["MLB", "baseball", "home run", "pitcher"],
    Sport.NHL: ["NHL", "hockey", "goal", "hat trick"],
    Sport.CBB: ["college basketball", "NCAA basketball", "march madness", "final four"],
    Sport.CFB: ["college football", "NCAA football", "bowl game", "playoff"],
    Sport.SOCCER: ["soccer", "football", "goal", "premier league", "champions league"],
    Sport.BOXING: ["boxing", "knockout", "title fight", "heavyweight"],
    Sport.SPORTS_BETTING: ["sports betting", "odds", "spread", "moneyline", "over under"],
}

_DURATION_RE = re.compile(r"PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?")


@dataclass(frozen=True, slots=True)
class SearchOptions:
    keywords: list[str]
    sport: Sport
    max_results: int = 50
    published_after: Optional[datetime] = None
    channel_ids: list[str] = field(default_factory=list)
    video_duration: str = "medium"  # any | short | medium | long
    order: str = "relevance"


@dataclass(frozen=True, slots=True)
class VideoResult:
    video_id: str
    title: str
    description: str
    channel_id: str
    channel_title: str
    published_at: datetime
    thumbnail_url: str = ""
    duration: Optional[str] = None
    view_count: Optional[int] = None
    like_count: Optional[int] = None
    comment_count: Optional[int] = None
    has_captions: bool = False
    tags: list[str] = field(default_factory=list)


def build_search_query(sport: Sport, keywords: list[str]) -> str:
    """Sport context terms (first two) plus user keywords, deduplicated in order."""
    terms = SPORT_QUERY_TEMPLATES.get(sport, [])[:2] + list(keywords)
    return " ".join(dict.fromkeys(terms))


def parse_duration(iso_duration: Optional[str]) -> int:
    """ISO-8601 duration (``PT1H2M3S``) to seconds; 0 when unparseable."""
    if not iso_duration:
        return 0
    match = _DURATION_RE.match(iso_duration)
    if not match:
        return 0
    hours, minutes, seconds = (int(g or 0) for g in match.groups())
    return hours * 3600 + minutes * 60 + seconds


def _int_or_none(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def parse_video(item: dict[str, Any]) -> Optional[VideoResult]:
    """Map a ``videos.list`` item to a VideoResult; None without id/snippet."""
    video_id = item.get("id")
    snippet = item.get("snippet")
    if not video_id or not snippet:
        return None
    thumbnails = snippet.get("thumbnails") or {}
    details = item.get("contentDetails") or {}
    stats = item.get("statistics") or {}
    return VideoResult(
        video_id=video_id,
        title=snippet.get("title") or "",
        description=snippet.get("description") or "",
        channel_id=snippet.get("channelId") or "",
        channel_title=snippet.get("channelTitle") or "",
        published_at=parse_iso(snippet.get("publishedAt")) or utcnow(),
        thumbnail_url=(thumbnails.get("high") or {}).get("url")
        or (thumbnails.get("default") or {}).get("url")
        or "",
        duration=details.get("duration"),
        view_count=_int_or_none(stats.get("viewCount")),
        like_count=_int_or_none(stats.get("likeCount")),
        comment_count=_int_or_none(stats.get("commentCount")),
        has_captions=details.get("caption") == "true",
        tags=list(snippet.get("tags") or []),
    )


class YouTubeSearchService:
    """Thin client over the search and videos endpoints."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = api_key
        self._transport = transport

    @property
    def api_key(self) -> str:
        key = self._api_key or settings.youtube_api_key
        if not key:
            raise FetchError("No YouTube API key configured")
        return key

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=YOUTUBE_API_BASE,
            timeout=httpx.Timeout(settings.http_timeout_seconds),
            transport=self._transport,
        )

    async def _get(self, client: httpx.AsyncClient, path: str, params: dict[str, Any]) -> Any:
        try:
            response = await client.get(path, params={**params, "key": self.api_key})
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise FetchError(
                f"YouTube {path} failed: HTTP {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise FetchError(f"YouTube {path} failed: {exc}") from exc

    async def search_videos(self, options: SearchOptions) -> list[VideoResult]:
        """Search, then fetch details for every hit.

        Only captioned videos are requested. A single channel filter is
        passed to the API; the API takes one channel per request.

        Raises:
            FetchError: missing API key or a failed request
        """
        params: dict[str, Any] = {
            "part": "snippet",
            "q": build_search_query(options.sport, options.keywords),
            "type": "video",
            "maxResults": min(options.max_results or MAX_RESULTS_PER_REQUEST, MAX_RESULTS_PER_REQUEST),
            "order": options.order,
            "videoCaption": "closedCaption",
            "videoDuration": options.video_duration,
            "safeSearch": "moderate",
        }
        if options.published_after:
            params["publishedAfter"] = options.published_after.strftime("%Y-%m-%dT%H:%M:%SZ")
        if len(options.channel_ids) == 1:
            params["channelId"] = options.channel_ids[0]

        async with self._client() as client:
            search = await self._get(client, "/search", params)
            video_ids = [
                item["id"]["videoId"]
                for item in search.get("items") or []
                if (item.get("id") or {}).get("videoId")
            ]
            if not video_ids:
                logger.info(f"YouTube search returned no videos for {params['q']!r}")
                return []

            details = await self._get(
                client,
                "/videos",
                {"part": "snippet,contentDetails,statistics", "id": ",".join(video_ids)},
            )

        results = [v for v in (parse_video(item) for item in details.get("items") or []) if v]
        logger.info(f"YouTube search {params['q']!r}: {len(results)} videos")
        return results

    async def get_video_details(self, video_id: str) -> Optional[VideoResult]:
        async with self._client() as client:
            data = await self._get(
                client,
                "/videos",
                {"part": "snippet,contentDetails,statistics", "id": video_id},
            )
        items = data.get("items") or []
        return parse_video(items[0]) if items else None


async def upsert_video(db: AsyncSession, org_id: str, video: VideoResult) -> int:
    """Insert or refresh a video row keyed by (org_id, youtube_video_id).

    Returns:
        The row id.
    """
    now = utcnow()
    values: dict[str, Any] = {
        "title": video.title,
        "description": video.description,
        "channel_id": video.channel_id,
        "channel_title": video.channel_title,
        "thumbnail_url": video.thumbnail_url,
        "view_count": video.view_count,
        "like_count": video.like_count,
        "comment_count": video.comment_count,
        "tags": video.tags,
        "updated_at": now,
    }
    if video.duration:
        values["duration_seconds"] = parse_duration(video.duration)

    stmt = insert(YouTubeVideo).values(
        org_id=org_id,
        youtube_video_id=video.video_id,
        published_at=video.published_at,
        created_at=now,
        **values,
    )
    stmt = stmt.on_conflict_do_update(
        constraint="uq_youtube_videos_org_video",
        set_=values,
    ).returning(YouTubeVideo.__table__.c.id)  # type: ignore[attr-defined]

    async with db.begin():
        result = await db.execute(stmt)
        return result.scalar_one()


youtube_search_service = YouTubeSearchService()
