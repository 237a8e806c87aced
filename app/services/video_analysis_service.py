"""Generative analysis of video transcripts and YouTube URLs via Gemini.

Two entry points:
- ``analyze_transcript``: scores a transcript against query keywords and
  proposes key moments. Returns None on any failure.
- ``analyze_youtube_video``: asks Gemini to watch a video by URL and return
  a transcript plus moments. Used when captions are unavailable. Returns
  None when Gemini is not configured or the result is unusable.
"""

import json
import logging
import re
from typing import Any, Optional

from google import genai
from google.genai import types
from pydantic import BaseModel, Field, ValidationError

from app.config import settings

logger = logging.getLogger(__name__)

ANALYSIS_MODEL = "gemini-2.0-flash"
VIDEO_MODEL = "gemini-2.5-flash"
MAX_TRANSCRIPT_CHARS = 15000
MIN_VIDEO_TRANSCRIPT_CHARS = 50


class KeyMoment(BaseModel):
    label: str
    start_seconds: float = Field(alias="startSeconds")
    end_seconds: float = Field(alias="endSeconds")
    description: str = ""
    confidence: float = 0.8

    model_config = {"populate_by_name": True}


class AnalysisEntities(BaseModel):
    people: list[str] = []
    teams: list[str] = []
    events: list[str] = []
    topics: list[str] = []


class TranscriptAnalysis(BaseModel):
    """Structured output from AI transcript analysis."""

    summary: str = ""
    why_relevant: str = Field(default="", alias="whyRelevant")
    key_moments: list[KeyMoment] = Field(default_factory=list, alias="keyMoments")
    entities: AnalysisEntities = Field(default_factory=AnalysisEntities)
    relevance_score: float = Field(default=0.5, alias="relevanceScore")

    model_config = {"populate_by_name": True}


class VideoSegment(BaseModel):
    text: str
    start_seconds: float = Field(alias="startSeconds")
    end_seconds: float = Field(alias="endSeconds")

    model_config = {"populate_by_name": True}


class VideoTranscriptResult(BaseModel):
    transcript: str
    segments: list[VideoSegment] = []
    summary: str = ""
    key_moments: list[KeyMoment] = Field(default_factory=list, alias="keyMoments")
    entities: AnalysisEntities = Field(default_factory=AnalysisEntities)

    model_config = {"populate_by_name": True}


def _system_prompt(sport: str) -> str:
    return f"""You are an expert sports content analyst specializing in {sport}. Your task is to analyze video transcripts and identify key moments that would be valuable for broadcast discussion.

Focus on:
- Dramatic moments, turning points, or controversial plays
- Expert analysis or insider information
- Breaking news or significant announcements
- Memorable quotes or soundbites
- Statistical insights or records

Respond with a JSON object (no markdown formatting)."""


def _transcript_prompt(
    transcript: str, keywords: list[str], sport: str, title: str, channel: str
) -> str:
    excerpt = transcript[:MAX_TRANSCRIPT_CHARS]
    if len(transcript) > MAX_TRANSCRIPT_CHARS:
        excerpt += " ... [truncated]"
    return f"""Analyze this {sport} video transcript and identify the most relevant moments for broadcast discussion.

Video Title: {title}
Channel: {channel}
Keywords of Interest: {", ".join(keywords)}

Transcript:
{excerpt}

Provide your analysis as a JSON object with this structure:
{{
  "summary": "Brief 2-3 sentence summary of the video content",
  "whyRelevant": "Explanation of why this video is relevant to the search keywords",
  "keyMoments": [
    {{
      "label": "Short label for the moment",
      "startSeconds": <approximate start time in seconds>,
      "endSeconds": <approximate end time in seconds>,
      "description": "What happens",
      "confidence": <0-1 confidence score>
    }}
  ],
  "entities": {{"people": [], "teams": [], "events": [], "topics": []}},
  "relevanceScore": <0-1 overall relevance to keywords>
}}

Only include moments that are genuinely noteworthy. Limit to 5 key moments maximum."""


def _video_prompt(video_id: str, keywords: list[str], sport: str) -> str:
    return f"""Analyze this YouTube video about {sport}.

Video URL: https://www.youtube.com/watch?v={video_id}

Please provide:
1. A full transcript of what is said in the video (as accurate as possible)
2. A brief summary (2-3 sentences)
3. Key moments with timestamps that relate to these keywords: {", ".join(keywords)}
4. People, teams, and topics mentioned

Respond in this exact JSON format:
{{
  "transcript": "Full transcript text here...",
  "segments": [{{"text": "segment text", "startSeconds": 0, "endSeconds": 30}}],
  "summary": "Brief summary...",
  "keyMoments": [{{"label": "Moment name", "startSeconds": 45, "endSeconds": 60, "description": "What happens"}}],
  "entities": {{"people": [], "teams": [], "topics": []}}
}}

Only include key moments that are truly noteworthy."""


def extract_json(response_text: str) -> dict[str, Any]:
    """Pull a JSON object out of a model response.

    Strips markdown code fences, then falls back to the outermost braces.

    Raises:
        ValueError: If no JSON object can be parsed
    """
    text = response_text.strip()
    fenced = re.match(r"```(?:json)?\s*([\s\S]*?)```", text)
    if fenced:
        text = fenced.group(1).strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        braces = re.search(r"\{[\s\S]*\}", text)
        if not braces:
            raise ValueError(f"No JSON found in response: {text[:100]}")
        try:
            data = json.loads(braces.group(0))
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON response: {e}")
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object")
    return data


def _clamp_unit(value: float) -> float:
    return min(max(value, 0.0), 1.0)


class TranscriptAnalysisService:
    """Handles AI-powered transcript and video analysis via Gemini API."""

    def __init__(self) -> None:
        self._client: Optional[genai.Client] = None

    @property
    def is_configured(self) -> bool:
        return bool(settings.gemini_api_key)

    @property
    def client(self) -> genai.Client:
        """Lazily initialize the Gemini client."""
        if self._client is None:
            if not settings.gemini_api_key:
                raise ValueError("GEMINI_API_KEY not configured")
            self._client = genai.Client(
                api_key=settings.gemini_api_key,
                http_options=types.HttpOptions(timeout=int(settings.gemini_timeout_seconds * 1000)),
            )
        return self._client

    async def _generate(self, model: str, prompt: str, system: Optional[str] = None) -> str:
        config = types.GenerateContentConfig(
            system_instruction=[types.Part.from_text(text=system)] if system else None,
            temperature=0.3,
        )
        response = await self.client.aio.models.generate_content(
            model=model,
            contents=[types.Content(role="user", parts=[types.Part.from_text(text=prompt)])],
            config=config,
        )
        return response.text or ""

    async def analyze_transcript(
        self,
        transcript: str,
        keywords: list[str],
        sport: str,
        title: str,
        channel: str,
    ) -> Optional[TranscriptAnalysis]:
        """Score a transcript and propose key moments.

        Args:
            transcript: Full transcript text
            keywords: Query keywords
            sport: Sport name for prompt context
            title: Video title
            channel: Channel name

        Returns:
            TranscriptAnalysis, or None when the call or parse fails so the
            caller keeps its heuristic score
        """
        try:
            text = await self._generate(
                ANALYSIS_MODEL,
                _transcript_prompt(transcript, keywords, sport, title, channel),
                system=_system_prompt(sport),
            )
            return self._parse_response(text)
        except Exception as e:
            logger.warning(f"Transcript analysis failed for '{title[:50]}': {e}")
            return None

    def _parse_response(self, response_text: str) -> TranscriptAnalysis:
        data = extract_json(response_text)
        try:
            analysis = TranscriptAnalysis.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Unexpected analysis shape: {e}")
        analysis.relevance_score = _clamp_unit(analysis.relevance_score)
        analysis.key_moments = [
            m for m in analysis.key_moments if m.start_seconds < m.end_seconds
        ][:5]
        for m in analysis.key_moments:
            m.confidence = _clamp_unit(m.confidence)
        return analysis

    async def analyze_youtube_video(
        self, video_id: str, keywords: list[str], sport: str
    ) -> Optional[VideoTranscriptResult]:
        """Transcript and moments for a video by URL, or None."""
        if not self.is_configured:
            logger.debug("Gemini not configured; skipping video analysis")
            return None
        try:
            logger.info(f"Analyzing video {video_id} with Gemini...")
            text = await self._generate(VIDEO_MODEL, _video_prompt(video_id, keywords, sport))
            result = VideoTranscriptResult.model_validate(extract_json(text))
        except Exception as e:
            logger.warning(f"Gemini video analysis failed for {video_id}: {e}")
            return None

        if len(result.transcript) < MIN_VIDEO_TRANSCRIPT_CHARS:
            logger.info(f"Gemini transcript too short for {video_id}")
            return None
        logger.info(
            f"Gemini transcript for {video_id}: {len(result.transcript)} chars, "
            f"{len(result.key_moments)} moments"
        )
        return result


# Singleton instance for convenience
transcript_analysis_service = TranscriptAnalysisService()
