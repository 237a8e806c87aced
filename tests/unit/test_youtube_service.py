"""Unit tests for YouTube search helpers and client."""

from datetime import datetime

import httpx
import pytest

from app.errors import FetchError
from app.schemas.base import Sport
from app.services.youtube_service import (
    SearchOptions,
    YouTubeSearchService,
    build_search_query,
    parse_duration,
    parse_video,
)

VIDEO_ITEM = {
    "id": "vid123",
    "snippet": {
        "title": "Mahomes touchdown highlights",
        "description": "All the plays",
        "channelId": "chan1",
        "channelTitle": "NFL",
        "publishedAt": "2024-10-14T15:00:00Z",
        "thumbnails": {"default": {"url": "https://img/default.jpg"}},
        "tags": ["nfl", "chiefs"],
    },
    "contentDetails": {"duration": "PT12M30S", "caption": "true"},
    "statistics": {"viewCount": "1500", "likeCount": "90"},
}


class TestHelpers:
    """Tests for query building and response parsing."""

    def test_parse_duration(self) -> None:
        assert parse_duration("PT1H2M3S") == 3723
        assert parse_duration("PT45S") == 45
        assert parse_duration("PT12M") == 720
        assert parse_duration(None) == 0
        assert parse_duration("garbage") == 0

    def test_build_search_query_dedupes(self) -> None:
        assert build_search_query(Sport.NFL, ["football", "Chiefs"]) == "NFL football Chiefs"

    def test_parse_video(self) -> None:
        video = parse_video(VIDEO_ITEM)
        assert video is not None
        assert video.video_id == "vid123"
        assert video.published_at == datetime(2024, 10, 14, 15, 0)
        assert video.thumbnail_url == "https://img/default.jpg"
        assert video.view_count == 1500
        assert video.like_count == 90
        assert video.comment_count is None
        assert video.has_captions is True
        assert video.tags == ["nfl", "chiefs"]

    def test_parse_video_requires_snippet(self) -> None:
        assert parse_video({"id": "x"}) is None


class TestSearchVideos:
    """Tests for the search client against a mocked transport."""

    @pytest.mark.asyncio
    async def test_search_then_details(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path.endswith("/search"):
                return httpx.Response(
                    200, json={"items": [{"id": {"videoId": "vid123"}}, {"id": {}}]}
                )
            return httpx.Response(200, json={"items": [VIDEO_ITEM]})

        service = YouTubeSearchService(api_key="k", transport=httpx.MockTransport(handler))
        results = await service.search_videos(
            SearchOptions(keywords=["Chiefs"], sport=Sport.NFL, channel_ids=["chan1"])
        )

        assert [r.video_id for r in results] == ["vid123"]
        search_params = seen[0].url.params
        assert search_params["q"] == "NFL football Chiefs"
        assert search_params["videoCaption"] == "closedCaption"
        assert search_params["channelId"] == "chan1"
        assert search_params["key"] == "k"
        assert seen[1].url.params["id"] == "vid123"

    @pytest.mark.asyncio
    async def test_empty_search_skips_details(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, json={"items": []})

        service = YouTubeSearchService(api_key="k", transport=httpx.MockTransport(handler))
        assert await service.search_videos(SearchOptions(keywords=["x"], sport=Sport.NBA)) == []
        assert calls == 1

    @pytest.mark.asyncio
    async def test_http_error_raises_fetch_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, json={"error": "quota"})

        service = YouTubeSearchService(api_key="k", transport=httpx.MockTransport(handler))
        with pytest.raises(FetchError) as exc_info:
            await service.search_videos(SearchOptions(keywords=["x"], sport=Sport.NBA))
        assert exc_info.value.status_code == 403
