"""Betting odds snapshots and final game results."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import Column, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

from app.schemas.base import Sport


class GameStatus(str, Enum):
    FINAL = "FINAL"
    POSTPONED = "POSTPONED"
    DELAYED = "DELAYED"
    IN_PROGRESS = "IN_PROGRESS"
    SCHEDULED = "SCHEDULED"


class OddsSnapshot(SQLModel, table=True):  # type: ignore[call-arg]
    """Point-in-time line for a game. Append-only to track line movement."""

    __tablename__ = "odds_snapshots"

    id: Optional[int] = Field(default=None, primary_key=True)
    org_id: str = Field(index=True)
    source_id: int = Field(foreign_key="sources.id", index=True)
    sport: Sport = Field(index=True)
    external_game_id: Optional[str] = Field(default=None, index=True)
    home_team: str
    away_team: str
    game_date: datetime = Field(index=True)

    home_moneyline: Optional[int] = Field(default=None)
    away_moneyline: Optional[int] = Field(default=None)
    spread: Optional[float] = Field(default=None)  # home perspective
    spread_juice: Optional[int] = Field(default=None)
    over_under: Optional[float] = Field(default=None)
    over_juice: Optional[int] = Field(default=None)
    under_juice: Optional[int] = Field(default=None)

    captured_at: datetime = Field(default_factory=datetime.utcnow)


class GameResult(SQLModel, table=True):  # type: ignore[call-arg]
    __tablename__ = "game_results"
    __table_args__ = (
        UniqueConstraint(
            "org_id", "home_team", "away_team", "game_date", name="uq_game_results_matchup"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    org_id: str = Field(index=True)
    source_id: int = Field(foreign_key="sources.id", index=True)
    sport: Sport = Field(index=True)
    external_game_id: Optional[str] = Field(default=None)
    home_team: str
    away_team: str
    game_date: datetime = Field(index=True)
    home_score: int
    away_score: int
    status: GameStatus = Field(default=GameStatus.FINAL)
    spread_winner: Optional[str] = Field(default=None)  # HOME / AWAY / PUSH
    total_result: Optional[str] = Field(default=None)  # OVER / UNDER / PUSH
    stats: Optional[dict[str, Any]] = Field(default=None, sa_column=Column(JSONB, nullable=True))

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
