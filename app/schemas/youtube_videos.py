"""Video metadata and transcripts fetched during query runs."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Column, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel


class YouTubeVideo(SQLModel, table=True):  # type: ignore[call-arg]
    __tablename__ = "youtube_videos"
    __table_args__ = (
        UniqueConstraint("org_id", "youtube_video_id", name="uq_youtube_videos_org_video"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    org_id: str = Field(index=True)
    youtube_video_id: str = Field(index=True)
    title: str
    description: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    channel_id: str
    channel_title: str
    published_at: datetime = Field(index=True)
    duration_seconds: Optional[int] = Field(default=None)
    view_count: Optional[int] = Field(default=None)
    like_count: Optional[int] = Field(default=None)
    comment_count: Optional[int] = Field(default=None)
    thumbnail_url: Optional[str] = Field(default=None)
    tags: list[str] = Field(default_factory=list, sa_column=Column(JSONB, nullable=False))

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class TranscriptSource(str, Enum):
    YOUTUBE_CAPTIONS = "YOUTUBE_CAPTIONS"
    THIRD_PARTY = "THIRD_PARTY"


class Transcript(SQLModel, table=True):  # type: ignore[call-arg]
    __tablename__ = "transcripts"
    __table_args__ = (UniqueConstraint("video_id", name="uq_transcripts_video"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    org_id: str = Field(index=True)
    video_id: int = Field(foreign_key="youtube_videos.id")
    source: TranscriptSource = Field(default=TranscriptSource.YOUTUBE_CAPTIONS)
    language: str = Field(default="en")
    full_text: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(default_factory=datetime.utcnow)


class TranscriptSegment(SQLModel, table=True):  # type: ignore[call-arg]
    __tablename__ = "transcript_segments"

    id: Optional[int] = Field(default=None, primary_key=True)
    transcript_id: int = Field(foreign_key="transcripts.id", index=True)
    start_seconds: float
    end_seconds: float
    text: str = Field(sa_column=Column(Text, nullable=False))
