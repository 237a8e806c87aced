"""Unit tests for the Gemini clients and parsing their responses."""

import pytest
from google import genai

from app.config import settings
from app.services.embedding_service import EmbeddingService
from app.services.video_analysis_service import TranscriptAnalysisService, extract_json


class TestExtractJson:
    """Tests for pulling JSON objects out of model text."""

    def test_plain_json(self) -> None:
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_fenced_json(self) -> None:
        assert extract_json('```json\n{"a": 1}\n```') == {"a": 1}

    def test_json_with_prose(self) -> None:
        assert extract_json('Here you go: {"a": {"b": 2}} hope that helps') == {"a": {"b": 2}}

    def test_no_json(self) -> None:
        with pytest.raises(ValueError):
            extract_json("no braces here")

    def test_array_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            extract_json("[1, 2, 3]")


class TestParseResponse:
    """Tests for normalising a transcript analysis."""

    def test_clamps_and_filters(self) -> None:
        service = TranscriptAnalysisService()
        analysis = service._parse_response(
            """{
                "relevanceScore": 1.7,
                "summary": "Recap",
                "whyRelevant": "Mentions the trade",
                "keyMoments": [
                    {"label": "ok", "startSeconds": 10, "endSeconds": 20, "confidence": 3},
                    {"label": "backwards", "startSeconds": 30, "endSeconds": 5}
                ],
                "entities": {"people": ["A"], "teams": [], "topics": ["trade"]}
            }"""
        )

        assert analysis.relevance_score == 1.0
        assert analysis.why_relevant == "Mentions the trade"
        assert [m.label for m in analysis.key_moments] == ["ok"]
        assert analysis.key_moments[0].confidence == 1.0
        assert analysis.entities.topics == ["trade"]

    def test_keeps_at_most_five_moments(self) -> None:
        moments = ",".join(
            f'{{"label": "m{i}", "startSeconds": {i * 10}, "endSeconds": {i * 10 + 5}}}'
            for i in range(8)
        )
        analysis = TranscriptAnalysisService()._parse_response(f'{{"keyMoments": [{moments}]}}')
        assert len(analysis.key_moments) == 5
        assert analysis.relevance_score == 0.5


class TestClientTimeout:
    """Gemini clients carry the configured request timeout."""

    @pytest.mark.parametrize("service_cls", [TranscriptAnalysisService, EmbeddingService])
    def test_client_uses_http_timeout(self, monkeypatch, service_cls) -> None:
        built: list[dict] = []

        class RecordingClient:
            def __init__(self, **kwargs) -> None:
                built.append(kwargs)

        monkeypatch.setattr(settings, "gemini_api_key", "test-key")
        monkeypatch.setattr(settings, "gemini_timeout_seconds", 45.0)
        monkeypatch.setattr(genai, "Client", RecordingClient)

        service_cls().client

        assert built[0]["api_key"] == "test-key"
        assert built[0]["http_options"].timeout == 45_000
