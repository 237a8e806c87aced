"""Unit tests for clip match scoring."""

from datetime import datetime, timedelta

import pytest

from app.schemas.base import Sport
from app.services.clip_pairing_service import (
    CandidateView,
    NewsView,
    StrictEntityMatcher,
    SubstringEntityMatcher,
    score_clip_match,
    select_matches,
    temporal_bonus,
    text_similarity,
    tokenize,
)

NEWS_AT = datetime(2024, 10, 14, 18, 0)


def _news(**overrides) -> NewsView:
    values = dict(
        id=1,
        org_id="default",
        sport=Sport.NFL,
        headline="Chiefs edge Bills",
        published_at=NEWS_AT,
        teams=("Kansas City Chiefs", "Buffalo Bills"),
    )
    values.update(overrides)
    return NewsView(**values)


def _candidate(candidate_id: int = 10, **overrides) -> CandidateView:
    values = dict(
        id=candidate_id,
        relevance_score=0.6,
        video_title="Weekly recap",
        video_description="",
        video_published_at=NEWS_AT - timedelta(hours=3),
    )
    values.update(overrides)
    return CandidateView(**values)


class TestMatchers:
    """Tests for entity matching strategies."""

    def test_substring_exact_and_partial(self) -> None:
        matcher = SubstringEntityMatcher()
        assert matcher.count_matches(["Kansas City Chiefs"], ["kansas city chiefs"]) == 1
        assert matcher.count_matches(["James"], ["LeBron James"]) == 0.5
        assert matcher.count_matches(["Chiefs"], ["Bills"]) == 0

    def test_strict_ignores_partial(self) -> None:
        matcher = StrictEntityMatcher()
        assert matcher.count_matches(["James"], ["LeBron James"]) == 0
        assert matcher.count_matches(["Amon-Ra St. Brown"], ["amonra st brown"]) == 1


class TestTextSimilarity:
    """Tests for token-set similarity."""

    def test_tokenize_drops_stop_words_and_short_tokens(self) -> None:
        assert tokenize("The Chiefs win, at KC!") == {"chiefs", "win"}

    def test_jaccard(self) -> None:
        assert text_similarity(
            "Chiefs beat Bills overtime thriller",
            "Chiefs beat Bills overtime thriller highlights",
        ) == pytest.approx(5 / 6)

    def test_empty(self) -> None:
        assert text_similarity("the a", "Chiefs") == 0.0


class TestTemporalBonus:
    def test_buckets(self) -> None:
        assert temporal_bonus(NEWS_AT, NEWS_AT - timedelta(hours=5))[0] == 0.15
        assert temporal_bonus(NEWS_AT, NEWS_AT - timedelta(days=2))[0] == 0.10
        assert temporal_bonus(NEWS_AT, NEWS_AT - timedelta(days=5))[0] == 0.05
        assert temporal_bonus(NEWS_AT, NEWS_AT - timedelta(days=10)) == (0.0, "")

    def test_same_calendar_day_only(self) -> None:
        """Late the previous evening is not the same day."""
        morning = datetime(2024, 10, 14, 1, 0)
        bonus, _ = temporal_bonus(morning, morning - timedelta(hours=2))
        assert bonus == 0.10


class TestScoreClipMatch:
    """Tests for the clip match formula."""

    def test_two_teams_same_day(self) -> None:
        candidate = _candidate(teams=("Kansas City Chiefs", "Buffalo Bills"))
        result = score_clip_match(_news(), candidate)
        assert result.score == pytest.approx(0.65)
        assert result.reason == "2 team match(es); Published same day"

    def test_quality_boost(self) -> None:
        candidate = _candidate(relevance_score=0.8, teams=("Kansas City Chiefs",))
        result = score_clip_match(_news(), candidate)
        assert result.score == pytest.approx((0.25 + 0.15) * 1.1)

    def test_text_similarity_contributes_above_floor(self) -> None:
        news = _news(headline="Chiefs beat Bills overtime thriller", teams=())
        candidate = _candidate(
            video_title="Chiefs beat Bills overtime thriller highlights",
            video_published_at=NEWS_AT - timedelta(days=10),
        )
        result = score_clip_match(news, candidate)
        assert result.score == pytest.approx(5 / 6 * 0.25)
        assert result.reason == "Text similarity: 83%"

    def test_score_is_capped(self) -> None:
        news = _news(
            players=("Patrick Mahomes", "Travis Kelce", "Josh Allen"),
            topics=("trade", "injury"),
        )
        candidate = _candidate(
            relevance_score=0.9,
            teams=news.teams,
            people=news.players,
            topics=news.topics,
        )
        assert score_clip_match(news, candidate).score == 1.0

    def test_strict_matcher_changes_partial_score(self) -> None:
        news = _news(teams=(), players=("James",))
        candidate = _candidate(people=("LeBron James",))
        loose = score_clip_match(news, candidate, SubstringEntityMatcher())
        strict = score_clip_match(news, candidate, StrictEntityMatcher())
        assert loose.score == pytest.approx(0.1 + 0.15)
        assert strict.score == pytest.approx(0.15)

    def test_no_signal(self) -> None:
        news = _news(teams=())
        candidate = _candidate(video_published_at=NEWS_AT - timedelta(days=20))
        result = score_clip_match(news, candidate)
        assert result.score == 0.0
        assert result.reason == "Low relevance"


def test_select_matches_filters_and_keeps_best_five() -> None:
    news = _news()
    strong = [
        _candidate(i, teams=("Kansas City Chiefs", "Buffalo Bills"), relevance_score=0.5 + i / 100)
        for i in range(1, 7)
    ]
    weak = _candidate(99, video_published_at=NEWS_AT - timedelta(days=20))

    matches = select_matches(news, [weak, *strong])

    assert len(matches) == 5
    assert 99 not in {m.candidate_id for m in matches}
    assert all(m.score > 0.3 for m in matches)
    scores = [m.score for m in matches]
    assert scores == sorted(scores, reverse=True)
