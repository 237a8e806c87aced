"""Relevance scoring for candidate videos.

All signals are in [0, 1] and combined with ``ScoringWeights``. The only
network-bound signal is embedding similarity; when it is disabled or the
embedder raises, it contributes a neutral 0.5.
"""

import asyncio
import logging
import math
import re
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional, Protocol

from app.config import settings
from app.services.embedding_service import cosine_similarity
from app.services.sources.base import utcnow

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 0.5
EMBEDDING_SAMPLE_CHARS = 2000


class Embedder(Protocol):
    async def embed(self, text: str) -> list[float]: ...


@dataclass(frozen=True, slots=True)
class ScoringInput:
    transcript: str
    video_title: str
    channel_name: str
    published_at: datetime
    view_count: Optional[int] = None
    like_count: Optional[int] = None
    duration_seconds: Optional[int] = None


@dataclass(frozen=True, slots=True)
class ScoringWeights:
    embedding_similarity: float = 0.40
    keyword_density: float = 0.20
    recency_boost: float = 0.15
    engagement_score: float = 0.10
    title_relevance: float = 0.15


DEFAULT_WEIGHTS = ScoringWeights()


def calculate_keyword_density(text: str, keywords: list[str]) -> float:
    """0.7 x keyword coverage + 0.3 x occurrences per 1000 words (capped at 10)."""
    if not keywords:
        return 0.0
    lower = text.lower()
    words = max(len(lower.split()), 1)

    matched = 0
    occurrences = 0
    for keyword in keywords:
        pattern = rf"\b{re.escape(keyword.lower())}\b"
        count = len(re.findall(pattern, lower))
        if count:
            matched += 1
            occurrences += count

    coverage = matched / len(keywords)
    frequency = min(occurrences / (words / 1000), 10) / 10
    return coverage * 0.7 + frequency * 0.3


def calculate_recency_boost(
    published_at: datetime,
    max_days_old: int = 30,
    now: Optional[datetime] = None,
) -> float:
    age_days = ((now or utcnow()) - published_at).total_seconds() / 86400
    if age_days <= 1:
        return 1.0
    if age_days <= 7:
        return 0.9
    if age_days <= 14:
        return 0.7
    if age_days <= max_days_old:
        return 0.5
    return 0.3


def calculate_engagement_score(
    view_count: Optional[int], like_count: Optional[int]
) -> float:
    """Log-scaled views (10M caps at 1) blended with like ratio (10% caps at 1)."""
    if not view_count or view_count <= 0:
        return NEUTRAL_SCORE
    view_score = min(math.log10(view_count + 1) / 7, 1.0)
    like_ratio = NEUTRAL_SCORE
    if like_count:
        like_ratio = min(like_count / view_count, 0.1) * 10
    return view_score * 0.7 + like_ratio * 0.3


def calculate_title_relevance(title: str, keywords: list[str]) -> float:
    if not keywords:
        return 0.0
    lower = title.lower()
    return sum(1 for k in keywords if k.lower() in lower) / len(keywords)


async def calculate_embedding_similarity(
    text: str, keywords: list[str], sport: str, embedder: Embedder
) -> float:
    query = await embedder.embed(f"{sport} {' '.join(keywords)}")
    sample = await embedder.embed(text[:EMBEDDING_SAMPLE_CHARS])
    return min(max(cosine_similarity(query, sample), 0.0), 1.0)


async def calculate_relevance_score(
    data: ScoringInput,
    keywords: list[str],
    sport: str,
    *,
    use_embeddings: bool = True,
    embedder: Optional[Embedder] = None,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
    now: Optional[datetime] = None,
) -> tuple[float, dict[str, float]]:
    """Weighted relevance of a video to a keyword intent.

    Args:
        data: Transcript and metadata for one video
        keywords: Query keywords
        sport: Sport name, used as embedding context
        use_embeddings: Whether to call the embedder at all
        embedder: Embedding collaborator; neutral score when absent
        weights: Signal weights
        now: Reference time for the recency signal

    Returns:
        (total clamped to [0, 1], per-signal breakdown)
    """
    embedding = NEUTRAL_SCORE
    if use_embeddings and embedder is not None and keywords:
        try:
            embedding = await asyncio.wait_for(
                calculate_embedding_similarity(data.transcript, keywords, sport, embedder),
                timeout=settings.gemini_timeout_seconds,
            )
        except TimeoutError:
            logger.warning(f"Embedding similarity timed out for '{data.video_title[:40]}'")
            embedding = NEUTRAL_SCORE
        except Exception as e:
            logger.warning(f"Embedding similarity failed for '{data.video_title[:40]}': {e}")
            embedding = NEUTRAL_SCORE

    breakdown = {
        "embedding_similarity": embedding,
        "keyword_density": calculate_keyword_density(data.transcript, keywords),
        "recency_boost": calculate_recency_boost(data.published_at, now=now),
        "engagement_score": calculate_engagement_score(data.view_count, data.like_count),
        "title_relevance": calculate_title_relevance(data.video_title, keywords),
    }
    total = sum(breakdown[name] * weight for name, weight in asdict(weights).items())
    if not math.isfinite(total):
        total = 0.0
    return min(max(total, 0.0), 1.0), breakdown


def calculate_simple_score(transcript: str, title: str, keywords: list[str]) -> float:
    """Keyword-only score with no network calls."""
    return (
        calculate_keyword_density(transcript, keywords) * 0.7
        + calculate_title_relevance(title, keywords) * 0.3
    )
