"""Importance scoring for ingested news items.

Each news item gets a 0-100 score from eight weighted factors. Items at or
above ``settings.clip_pair_importance_threshold`` move on to clip pairing.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.errors import EnqueueError
from app.schemas.news_items import NewsItem, NewsItemType
from app.schemas.odds import OddsSnapshot
from app.schemas.sources import Source
from app.services.entity_extraction_service import ExtractedEntities, extract_entities
from app.services.job_queue import CLIP_PAIR, JobQueue
from app.services.sources.base import utcnow

logger = logging.getLogger(__name__)

UPCOMING_GAME_WINDOW = timedelta(hours=48)


@dataclass(frozen=True, slots=True)
class ImportanceWeights:
    recency: float = 0.15
    time_sensitivity: float = 0.15
    entity_relevance: float = 0.15
    topic_weight: float = 0.15
    exclusivity: float = 0.10
    source_authority: float = 0.20
    game_proximity: float = 0.05
    betting_relevance: float = 0.05


IMPORTANCE_WEIGHTS = ImportanceWeights()


@dataclass(frozen=True, slots=True)
class UpcomingGame:
    teams: tuple[str, ...]
    game_date: datetime


@dataclass(frozen=True, slots=True)
class ImportanceInput:
    """The news item fields scoring reads."""

    headline: str
    content: Optional[str]
    type: NewsItemType
    published_at: datetime
    source_name: str = ""


@dataclass(slots=True)
class ImportanceResult:
    total_score: int
    breakdown: dict[str, float]
    reasoning: str


TOPIC_WEIGHTS: dict[NewsItemType, float] = {
    NewsItemType.TRADE: 0.95,
    NewsItemType.BREAKING: 0.9,
    NewsItemType.INJURY: 0.85,
    NewsItemType.BETTING_LINE: 0.75,
    NewsItemType.GAME_RESULT: 0.7,
    NewsItemType.RUMOR: 0.6,
    NewsItemType.SCHEDULE: 0.4,
    NewsItemType.ANALYSIS: 0.3,
}

TYPE_SENSITIVITY: dict[NewsItemType, float] = {
    NewsItemType.BREAKING: 1.0,
    NewsItemType.TRADE: 0.9,
    NewsItemType.INJURY: 0.85,
    NewsItemType.GAME_RESULT: 0.7,
    NewsItemType.BETTING_LINE: 0.6,
    NewsItemType.RUMOR: 0.5,
    NewsItemType.SCHEDULE: 0.3,
    NewsItemType.ANALYSIS: 0.2,
}

BREAKING_MARKERS = ("breaking", "just in", "happening now", "developing")

SOURCE_AUTHORITY: list[tuple[re.Pattern[str], float]] = [
    (re.compile(r"espn", re.I), 0.95),
    (re.compile(r"nfl\.com|nba\.com|mlb\.com|nhl\.com", re.I), 0.95),
    (re.compile(r"bleacher\s*report", re.I), 0.85),
    (re.compile(r"athletic", re.I), 0.9),
    (re.compile(r"yahoo\s*sports", re.I), 0.8),
    (re.compile(r"cbs\s*sports", re.I), 0.85),
    (re.compile(r"fox\s*sports", re.I), 0.85),
    (re.compile(r"nbc\s*sports", re.I), 0.85),
    (re.compile(r"draftkings|fanduel", re.I), 0.8),
    (re.compile(r"twitter|x\.com", re.I), 0.7),
    (re.compile(r"reddit", re.I), 0.5),
]

EXCLUSIVE_MARKERS: list[tuple[re.Pattern[str], float]] = [
    (re.compile(r"first to report", re.I), 0.3),
    (re.compile(r"exclusive", re.I), 0.25),
    (re.compile(r"breaking", re.I), 0.2),
    (re.compile(r"sources tell|sources say|per sources", re.I), 0.15),
    (re.compile(r"confirmed", re.I), 0.1),
]
_REPOST_RE = re.compile(r"via\s+@|retweet|RT\s*:", re.I)

_HIGH_BETTING = [
    re.compile(p, re.I)
    for p in (
        r"starter|starting lineup|will start",
        r"out\s+(?:for|of)\s+(?:the\s+)?game",
        r"ruled out|doubtful|questionable",
        r"injury report",
        r"line mov(?:e|ing|ement)",
        r"spread|over/under|moneyline",
    )
]
_MEDIUM_BETTING = [
    re.compile(p, re.I)
    for p in (r"day-to-day", r"limited practice", r"probable", r"game-time decision")
]


def calculate_recency(published_at: datetime, now: datetime) -> float:
    """1.0 when fresh, exp(-h/17) decay, floor 0.05 from 72 hours."""
    hours = int((now - published_at).total_seconds() // 3600)
    if hours <= 0:
        return 1.0
    if hours >= 72:
        return 0.05
    return math.exp(-hours / 17)


def calculate_time_sensitivity(item_type: NewsItemType, headline: str) -> float:
    lower = headline.lower()
    if any(marker in lower for marker in BREAKING_MARKERS):
        return 1.0
    return TYPE_SENSITIVITY.get(item_type, 0.3)


def calculate_entity_relevance(teams: Sequence[str], players: Sequence[str]) -> float:
    if not teams and not players:
        return 0.2
    score = 0.3 + min(len(teams) * 0.15, 0.3) + min(len(players) * 0.1, 0.4)
    return min(score, 1.0)


def calculate_exclusivity(text: str) -> float:
    score = 0.3
    for pattern, bonus in EXCLUSIVE_MARKERS:
        if pattern.search(text):
            score += bonus
    if _REPOST_RE.search(text):
        score -= 0.2
    return max(0.0, min(score, 1.0))


def calculate_source_authority(source_name: str) -> float:
    if not source_name:
        return 0.5
    for pattern, score in SOURCE_AUTHORITY:
        if pattern.search(source_name):
            return score
    return 0.5


def _teams_overlap(a: str, b: str) -> bool:
    a, b = a.lower(), b.lower()
    return a in b or b in a


def calculate_game_proximity(
    teams: Sequence[str], upcoming_games: Sequence[UpcomingGame], now: datetime
) -> float:
    if not teams or not upcoming_games:
        return 0.3
    closest: Optional[float] = None
    for game in upcoming_games:
        if not any(_teams_overlap(t, g) for t in teams for g in game.teams):
            continue
        hours = int((game.game_date - now).total_seconds() // 3600)
        if hours >= 0 and (closest is None or hours < closest):
            closest = hours
    if closest is None:
        return 0.3
    if closest <= 2:
        return 1.0
    if closest <= 12:
        return 0.8
    if closest <= 24:
        return 0.6
    if closest <= 48:
        return 0.4
    return 0.3


def calculate_betting_relevance(item_type: NewsItemType, text: str) -> float:
    if item_type == NewsItemType.BETTING_LINE:
        return 1.0
    if any(p.search(text) for p in _HIGH_BETTING):
        return 0.9
    if any(p.search(text) for p in _MEDIUM_BETTING):
        return 0.6
    if item_type == NewsItemType.INJURY:
        return 0.7
    if item_type == NewsItemType.TRADE:
        return 0.5
    if item_type == NewsItemType.GAME_RESULT:
        return 0.4
    return 0.2


def generate_reasoning(breakdown: dict[str, float], item_type: NewsItemType) -> str:
    reasons: list[str] = []
    if breakdown["recency"] > 0.8:
        reasons.append("Very recent news")
    elif breakdown["recency"] > 0.5:
        reasons.append("Recent news")
    elif breakdown["recency"] < 0.2:
        reasons.append("Older news")
    if breakdown["topic_weight"] > 0.8:
        reasons.append(f"High-impact {item_type.value.lower().replace('_', ' ')} news")
    if breakdown["source_authority"] > 0.8:
        reasons.append("From authoritative source")
    if breakdown["exclusivity"] > 0.7:
        reasons.append("Appears to be exclusive/breaking")
    if breakdown["betting_relevance"] > 0.7:
        reasons.append("May affect betting lines")
    if breakdown["game_proximity"] > 0.7:
        reasons.append("Relates to upcoming game")
    return ". ".join(reasons) or "Standard news item"


def calculate_importance(
    item: ImportanceInput,
    entities: ExtractedEntities,
    now: Optional[datetime] = None,
    *,
    upcoming_games: Sequence[UpcomingGame] = (),
    weights: ImportanceWeights = IMPORTANCE_WEIGHTS,
) -> ImportanceResult:
    """Score a news item.

    Args:
        item: Headline, body, type, publish time and source name
        entities: Teams and players extracted from the item
        now: Reference time for recency and game proximity
        upcoming_games: Games used for the proximity factor
        weights: Factor weights

    Returns:
        ImportanceResult with a 0-100 integer score
    """
    now = now or utcnow()
    text = f"{item.headline} {item.content or ''}"
    breakdown = {
        "recency": calculate_recency(item.published_at, now),
        "time_sensitivity": calculate_time_sensitivity(item.type, item.headline),
        "entity_relevance": calculate_entity_relevance(entities.teams, entities.players),
        "topic_weight": TOPIC_WEIGHTS.get(item.type, 0.3),
        "exclusivity": calculate_exclusivity(text),
        "source_authority": calculate_source_authority(item.source_name),
        "game_proximity": calculate_game_proximity(entities.teams, upcoming_games, now),
        "betting_relevance": calculate_betting_relevance(item.type, text),
    }
    total = sum(breakdown[name] * weight for name, weight in asdict(weights).items())
    return ImportanceResult(
        total_score=round(total * 100),
        breakdown=breakdown,
        reasoning=generate_reasoning(breakdown, item.type),
    )


async def _upcoming_games(
    db: AsyncSession, org_id: str, sport: Any, now: datetime
) -> list[UpcomingGame]:
    result = await db.execute(
        select(OddsSnapshot.home_team, OddsSnapshot.away_team, OddsSnapshot.game_date)
        .where(
            OddsSnapshot.org_id == org_id,  # type: ignore[arg-type]
            OddsSnapshot.sport == sport,  # type: ignore[arg-type]
            OddsSnapshot.game_date >= now,  # type: ignore[arg-type]
            OddsSnapshot.game_date <= now + UPCOMING_GAME_WINDOW,  # type: ignore[arg-type]
        )
        .distinct()
    )
    return [
        UpcomingGame(teams=(home, away), game_date=game_date)
        for home, away, game_date in result.all()
    ]


async def process_importance_score(
    db: AsyncSession,
    queue: Optional[JobQueue],
    news_item_id: int,
    now: Optional[datetime] = None,
) -> ImportanceResult:
    """Extract entities, score and persist one news item.

    Raises:
        LookupError: the news item does not exist
    """
    now = now or utcnow()
    async with db.begin():
        item = await db.get(NewsItem, news_item_id)
        if item is None:
            raise LookupError(f"News item not found: {news_item_id}")
        source = await db.get(Source, item.source_id)

        entities = extract_entities(f"{item.headline} {item.content or ''}", item.sport)
        upcoming = await _upcoming_games(db, item.org_id, item.sport, now)
        result = calculate_importance(
            ImportanceInput(
                headline=item.headline,
                content=item.content,
                type=item.type,
                published_at=item.published_at,
                source_name=source.name if source else "",
            ),
            entities,
            now,
            upcoming_games=upcoming,
        )

        item.teams = entities.teams
        item.players = entities.players
        item.topics = entities.topics
        item.importance_score = result.total_score
        item.score_breakdown = {**result.breakdown, "reasoning": result.reasoning}
        item.is_processed = True
        db.add(item)

    logger.info(f"News item {news_item_id} scored {result.total_score}")

    if queue is not None and result.total_score >= settings.clip_pair_importance_threshold:
        try:
            await queue.enqueue(CLIP_PAIR, {"news_item_id": news_item_id}, job_id=news_item_id)
        except EnqueueError as exc:
            logger.warning(f"Could not queue clip pairing for {news_item_id}: {exc}")
    return result
