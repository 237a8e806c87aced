"""Unit tests for moment derivation and per-video analysis."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import pytest

from app.services.analysis_service import (
    AnalysisConfig,
    AnalyzedVideo,
    Moment,
    VideoView,
    analyze_transcript_content,
    analyze_video_metadata_only,
    extract_keyword_moments,
    merge_adjacent_moments,
    rank_candidates,
)
from app.services.transcript_service import TranscriptChunk
from app.services.video_analysis_service import TranscriptAnalysis

NOW = datetime(2024, 10, 14, 12, 0)
KEYWORDS = ["touchdown", "mahomes"]
FULL_TEXT = "Mahomes throws a touchdown. Another touchdown for Mahomes."


@dataclass
class Seg:
    start_seconds: float
    end_seconds: float
    text: str


SEGMENTS = [
    Seg(0, 5, "Mahomes drops back"),
    Seg(5, 10, "touchdown to Kelce"),
    Seg(40, 45, "commercial break"),
    Seg(45, 50, "more talk"),
]


class FakeAnalyzer:
    def __init__(self, result: Optional[TranscriptAnalysis] = None, error: bool = False):
        self.result = result
        self.error = error
        self.calls = 0

    async def analyze_transcript(
        self, transcript: str, keywords: list[str], sport: str, title: str, channel: str
    ) -> Optional[TranscriptAnalysis]:
        self.calls += 1
        if self.error:
            raise RuntimeError("model unavailable")
        return self.result


def _video(**overrides) -> VideoView:
    values = dict(
        id=1,
        title="Mahomes touchdown",
        description="",
        channel_title="NFL",
        published_at=NOW - timedelta(hours=2),
    )
    values.update(overrides)
    return VideoView(**values)


class TestMergeAdjacentMoments:
    """Tests for merging and capping moments."""

    def test_close_moments_merge(self) -> None:
        merged = merge_adjacent_moments(
            [Moment(15, 20, "b", confidence=0.9), Moment(0, 10, "a", confidence=0.4)]
        )
        assert len(merged) == 1
        assert (merged[0].start_seconds, merged[0].end_seconds) == (0, 20)
        assert merged[0].label == "a + b"
        assert merged[0].confidence == 0.9

    def test_distant_moments_stay_apart(self) -> None:
        merged = merge_adjacent_moments([Moment(0, 10, "a"), Moment(25, 30, "b")])
        assert [(m.start_seconds, m.end_seconds) for m in merged] == [(0, 10), (25, 30)]

    def test_long_moment_is_capped(self) -> None:
        merged = merge_adjacent_moments([Moment(30, 200, "long")])
        assert (merged[0].start_seconds, merged[0].end_seconds) == (30, 120)

    def test_empty(self) -> None:
        assert merge_adjacent_moments([]) == []


class TestExtractKeywordMoments:
    """Tests for keyword-ranked transcript moments."""

    def test_ranks_by_matched_keywords(self) -> None:
        chunks = [
            TranscriptChunk(text="a touchdown", start_seconds=0, end_seconds=30),
            TranscriptChunk(text="nothing", start_seconds=30, end_seconds=60),
            TranscriptChunk(text="Mahomes touchdown", start_seconds=60, end_seconds=90),
        ]

        moments = extract_keyword_moments(chunks, KEYWORDS)

        assert [m.start_seconds for m in moments] == [60, 0]
        assert moments[0].confidence == 1.0
        assert moments[1].confidence == 0.5

    def test_respects_max_moments(self) -> None:
        chunks = [
            TranscriptChunk(text="touchdown", start_seconds=i * 30, end_seconds=i * 30 + 30)
            for i in range(10)
        ]
        assert len(extract_keyword_moments(chunks, KEYWORDS, max_moments=3)) == 3


class TestAnalyzeTranscriptContent:
    """Tests for full analysis of a transcribed video."""

    @pytest.mark.asyncio
    async def test_ai_result_is_averaged_with_heuristic(self) -> None:
        analyzer = FakeAnalyzer(
            TranscriptAnalysis.model_validate(
                {
                    "relevanceScore": 0.95,
                    "summary": "Mahomes highlights",
                    "whyRelevant": "Two touchdowns",
                    "keyMoments": [
                        {"label": "TD", "startSeconds": 5, "endSeconds": 12, "confidence": 0.9}
                    ],
                    "entities": {"people": ["Patrick Mahomes"], "teams": ["Chiefs"]},
                }
            )
        )

        result = await analyze_transcript_content(
            _video(), FULL_TEXT, SEGMENTS, KEYWORDS, "NFL", analyzer=analyzer, now=NOW
        )

        assert result is not None
        assert analyzer.calls == 1
        assert result.relevance_score == pytest.approx((0.75 + 0.95) / 2)
        assert result.summary == "Mahomes highlights"
        assert [(m.start_seconds, m.end_seconds) for m in result.moments] == [(5, 12)]
        assert result.entities["people"] == ["Patrick Mahomes"]

    @pytest.mark.asyncio
    async def test_keyword_moments_without_analyzer(self) -> None:
        result = await analyze_transcript_content(
            _video(), FULL_TEXT, SEGMENTS, KEYWORDS, "NFL", now=NOW
        )

        assert result is not None
        assert result.relevance_score == pytest.approx(0.75)
        assert [(m.start_seconds, m.end_seconds) for m in result.moments] == [(0, 10)]
        assert result.moments[0].label == "touchdown"

    @pytest.mark.asyncio
    async def test_analyzer_failure_keeps_heuristic(self) -> None:
        result = await analyze_transcript_content(
            _video(), FULL_TEXT, SEGMENTS, KEYWORDS, "NFL",
            analyzer=FakeAnalyzer(error=True), now=NOW,
        )
        assert result is not None
        assert result.relevance_score == pytest.approx(0.75)

    @pytest.mark.asyncio
    async def test_ai_disabled_skips_analyzer(self) -> None:
        analyzer = FakeAnalyzer(TranscriptAnalysis())
        await analyze_transcript_content(
            _video(), FULL_TEXT, SEGMENTS, KEYWORDS, "NFL",
            AnalysisConfig(use_ai=False), analyzer=analyzer, now=NOW,
        )
        assert analyzer.calls == 0

    @pytest.mark.asyncio
    async def test_below_threshold_returns_none(self) -> None:
        result = await analyze_transcript_content(
            _video(title="baseball", published_at=NOW - timedelta(days=60)),
            "baseball talk",
            [Seg(0, 5, "baseball talk")],
            ["hockey"],
            "NHL",
            now=NOW,
        )
        assert result is None


class TestMetadataOnly:
    """Tests for the metadata-only fallback score."""

    def test_scores_keywords_in_title(self) -> None:
        result = analyze_video_metadata_only(
            _video(view_count=10_000_000), KEYWORDS, "NFL", now=NOW
        )
        assert result is not None
        assert result.relevance_score == pytest.approx(1.0)
        assert result.moments == []
        assert result.why_relevant == "Contains keywords: touchdown, mahomes"

    def test_irrelevant_video_is_dropped(self) -> None:
        result = analyze_video_metadata_only(
            _video(title="cooking show", view_count=1, published_at=NOW - timedelta(days=20)),
            KEYWORDS,
            "NFL",
            now=NOW,
        )
        assert result is None


def test_rank_candidates_orders_and_truncates() -> None:
    candidates = [AnalyzedVideo(video_id=i, relevance_score=i / 10) for i in range(5)]
    ranked = rank_candidates(candidates, top_n=2)
    assert [c.video_id for c in ranked] == [4, 3]
