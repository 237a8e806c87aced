"""Unit tests for rule-based entity extraction."""

from app.schemas.base import Sport
from app.services.entity_extraction_service import (
    extract_entities,
    extract_players,
    extract_teams,
    extract_topics,
)


class TestExtractTeams:
    """Tests for team detection."""

    def test_nickname_and_full_name(self) -> None:
        text = "Chiefs trade Travis Kelce to the Buffalo Bills"
        assert extract_teams(text, Sport.NFL) == ["Buffalo Bills", "Kansas City Chiefs"]

    def test_nickname_is_case_insensitive(self) -> None:
        assert extract_teams("the lakers won again", Sport.NBA) == ["Los Angeles Lakers"]

    def test_abbreviation_must_be_upper_case(self) -> None:
        assert extract_teams("KC rolls on", Sport.NFL) == ["Kansas City Chiefs"]
        assert extract_teams("kc rolls on", Sport.NFL) == []

    def test_whole_words_only(self) -> None:
        assert extract_teams("Ramsey signs extension", Sport.NFL) == []

    def test_unknown_sport_has_no_teams(self) -> None:
        assert extract_teams("Chiefs win", Sport.BOXING) == []


class TestExtractPlayers:
    """Tests for capitalised-name player detection."""

    def test_finds_names(self) -> None:
        text = "Patrick Mahomes and Travis Kelce connect again; Mahomes praised Kelce"
        assert extract_players(text, Sport.NFL) == ["Patrick Mahomes", "Travis Kelce"]

    def test_skips_common_phrases_and_teams(self) -> None:
        text = "Breaking News: Kansas City and Green Bay Packers meet at Super Bowl"
        assert extract_players(text, Sport.NFL) == []

    def test_middle_initial_and_hyphen(self) -> None:
        text = "Amon-Ra St. Brown and Jaxon Smith-Njigba both scored"
        assert "Jaxon Smith-Njigba" in extract_players(text, Sport.NFL)


class TestExtractTopics:
    """Tests for topic tagging."""

    def test_multiple_topics(self) -> None:
        topics = extract_topics("Star ruled questionable after injury; trade talks stall")
        assert topics == ["trade", "injury"]

    def test_no_topics(self) -> None:
        assert extract_topics("A quiet afternoon") == []


def test_extract_entities_combines_all() -> None:
    entities = extract_entities("Chiefs sign Patrick Mahomes to record extension", Sport.NFL)
    assert entities.teams == ["Kansas City Chiefs"]
    assert entities.players == ["Patrick Mahomes"]
    assert entities.topics == ["signing", "milestone"]
