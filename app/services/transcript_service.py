"""YouTube caption fetching, transcript persistence, and chunking."""

from __future__ import annotations

import html
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Sequence

import httpx
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.schemas.youtube_videos import Transcript, TranscriptSegment, TranscriptSource

logger = logging.getLogger(__name__)

WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
_PLAYER_RESPONSE_RE = re.compile(r"var ytInitialPlayerResponse\s*=\s*(\{.+?\});", re.DOTALL)
_CAPTION_RE = re.compile(r'<text[^>]*start="([\d.]+)"[^>]*dur="([\d.]+)"[^>]*>([^<]*)</text>')


@dataclass(frozen=True, slots=True)
class CaptionSegment:
    text: str
    start: float
    duration: float


@dataclass(slots=True)
class TranscriptResult:
    segments: list[CaptionSegment]
    full_text: str
    source: TranscriptSource = TranscriptSource.YOUTUBE_CAPTIONS


class SegmentLike(Protocol):
    start_seconds: float
    end_seconds: float
    text: str


@dataclass(slots=True)
class TranscriptChunk:
    text: str
    start_seconds: float
    end_seconds: float
    segment_indexes: list[int] = field(default_factory=list)


def parse_caption_xml(xml: str) -> list[CaptionSegment]:
    """Parse timedtext XML into segments, dropping empty lines."""
    segments: list[CaptionSegment] = []
    for start, dur, raw in _CAPTION_RE.findall(xml):
        text = html.unescape(raw).replace("\n", " ").strip()
        if text:
            segments.append(CaptionSegment(text=text, start=float(start), duration=float(dur)))
    return segments


def select_caption_track(tracks: list[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """English first, then any en-* variant, then whatever is first."""
    if not tracks:
        return None
    for track in tracks:
        if track.get("languageCode") == "en":
            return track
    for track in tracks:
        if str(track.get("languageCode") or "").startswith("en"):
            return track
    return tracks[0]


class TranscriptService:
    """Fetches captions from the watch page's player response."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers={
                "User-Agent": settings.scraper_user_agent,
                "Accept-Language": "en-US,en;q=0.9",
                "Referer": "https://www.youtube.com/",
            },
            timeout=httpx.Timeout(settings.http_timeout_seconds),
            follow_redirects=True,
            transport=self._transport,
        )

    async def fetch_transcript(self, video_id: str) -> Optional[TranscriptResult]:
        """Captions for a video, or None when unavailable.

        Never raises for missing captions; transport errors propagate so the
        caller can log them per video.
        """
        async with self._client() as client:
            page = await client.get(WATCH_URL.format(video_id=video_id))
            page.raise_for_status()

            match = _PLAYER_RESPONSE_RE.search(page.text)
            if not match:
                logger.info(f"No player response found for {video_id}")
                return None
            try:
                player = json.loads(match.group(1))
            except json.JSONDecodeError:
                logger.info(f"Failed to parse player response for {video_id}")
                return None

            tracks = (
                (player.get("captions") or {})
                .get("playerCaptionsTracklistRenderer", {})
                .get("captionTracks")
                or []
            )
            track = select_caption_track(tracks)
            if not track or not track.get("baseUrl"):
                logger.info(f"No caption tracks found for {video_id}")
                return None

            captions = await client.get(track["baseUrl"])
            captions.raise_for_status()

        segments = parse_caption_xml(captions.text)
        if not segments:
            logger.info(f"No caption segments parsed for {video_id}")
            return None
        logger.debug(f"Got {len(segments)} caption segments for {video_id}")
        return TranscriptResult(
            segments=segments,
            full_text=" ".join(s.text for s in segments),
        )


async def save_transcript(
    db: AsyncSession,
    org_id: str,
    video_id: int,
    transcript: TranscriptResult,
) -> int:
    """Store a transcript for a video, replacing any earlier one.

    Returns:
        The transcript id.
    """
    async with db.begin():
        existing = await db.execute(
            select(Transcript.id).where(Transcript.video_id == video_id)  # type: ignore[call-overload, arg-type]
        )
        for (transcript_id,) in existing.all():
            await db.execute(
                delete(TranscriptSegment).where(
                    TranscriptSegment.transcript_id == transcript_id  # type: ignore[arg-type]
                )
            )
            await db.execute(delete(Transcript).where(Transcript.id == transcript_id))  # type: ignore[arg-type]

        row = Transcript(
            org_id=org_id,
            video_id=video_id,
            source=transcript.source,
            language="en",
            full_text=transcript.full_text,
        )
        db.add(row)
        await db.flush()
        assert row.id is not None
        db.add_all(
            [
                TranscriptSegment(
                    transcript_id=row.id,
                    start_seconds=s.start,
                    end_seconds=s.start + s.duration,
                    text=s.text,
                )
                for s in transcript.segments
            ]
        )
        return row.id


async def get_transcript_segments(db: AsyncSession, transcript_id: int) -> list[TranscriptSegment]:
    async with db.begin():
        result = await db.execute(
            select(TranscriptSegment)
            .where(TranscriptSegment.transcript_id == transcript_id)  # type: ignore[arg-type]
            .order_by(TranscriptSegment.start_seconds)
        )
        return list(result.scalars().all())


def chunk_transcript(
    segments: Sequence[SegmentLike],
    target_duration: float = 30,
    overlap: float = 5,
    max_chunk_size: int = 2000,
) -> list[TranscriptChunk]:
    """Group segments into ~``target_duration`` second windows.

    A new chunk starts when adding the next segment would exceed the target
    duration or ``max_chunk_size`` characters. Each new chunk re-includes
    segments that started within ``overlap`` seconds before the break.
    """
    if not segments:
        return []

    chunks: list[TranscriptChunk] = []
    current = TranscriptChunk(
        text="",
        start_seconds=segments[0].start_seconds,
        end_seconds=segments[0].end_seconds,
    )

    for index, segment in enumerate(segments):
        too_long = segment.end_seconds - current.start_seconds > target_duration
        too_big = len(current.text) + len(segment.text) > max_chunk_size
        if (too_long or too_big) and current.text:
            chunks.append(current)
            overlap_start = max(current.start_seconds, segment.start_seconds - overlap)
            carried = [
                i
                for i, s in enumerate(segments)
                if overlap_start <= s.start_seconds < segment.start_seconds
            ]
            current = TranscriptChunk(
                text=" ".join(segments[i].text for i in carried),
                start_seconds=overlap_start,
                end_seconds=segment.end_seconds,
                segment_indexes=carried,
            )

        current.text = f"{current.text} {segment.text}" if current.text else segment.text
        current.end_seconds = segment.end_seconds
        current.segment_indexes.append(index)

    if current.text:
        chunks.append(current)
    return chunks


def format_timestamp(seconds: float) -> str:
    """``m:ss`` or ``h:mm:ss``."""
    total = int(seconds)
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


# Singleton instance for convenience
transcript_service = TranscriptService()
