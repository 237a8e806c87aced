"""Base Classes to Use as MixIns Elsewhere in App"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


class SoftDeleteMixin(SQLModel):
    deleted_at: Optional[datetime] = Field(default=None, index=True)


class Sport(str, Enum):
    """Sports a source or query definition can target."""

    NFL = "NFL"
    NBA = "NBA"
    MLB = "MLB"
    NHL = "NHL"
    CBB = "CBB"
    CFB = "CFB"
    SOCCER = "SOCCER"
    BOXING = "BOXING"
    SPORTS_BETTING = "SPORTS_BETTING"


class ScheduleType(str, Enum):
    """How often a scheduled source or query definition runs."""

    MANUAL = "MANUAL"
    HOURLY = "HOURLY"
    DAILY = "DAILY"
    WEEKDAYS = "WEEKDAYS"
    WEEKLY = "WEEKLY"
    CUSTOM = "CUSTOM"


class TriggerType(str, Enum):
    """Who or what started a run."""

    MANUAL = "MANUAL"
    SCHEDULED = "SCHEDULED"
    SYSTEM = "SYSTEM"
    API = "API"
