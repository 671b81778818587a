"""Closed vocabularies and value types for street reports."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class Street(str, Enum):
    BOROWSKA = "Borowska"
    BUFOROWA = "Buforowa"
    GRABISZYNSKA = "Grabiszyńska"
    GROTA_ROWECKIEGO = "Grota Roweckiego"
    KARKONOSKA = "Karkonoska"
    OLTASZYNSKA = "Ołtaszyńska"
    OPOLSKA = "Opolska"
    PARAFIALNA = "Parafialna"
    POWSTANCOW_SLASKICH = "Powstańców Śląskich"
    RADOSNA = "Radosna"
    SUDECKA = "Sudecka"
    SLEZNA = "Ślężna"
    ZWYCIESKA = "Zwycięska"


class Direction(str, Enum):
    TO_CENTER = "to_center"
    FROM_CENTER = "from_center"

    @property
    def label(self) -> str:
        return "do centrum" if self is Direction.TO_CENTER else "z centrum"


class TrafficStatus(str, Enum):
    """Congestion state a client can report."""

    STOI = "stoi"  # stopped
    TOCZY_SIE = "toczy_sie"  # crawling
    JEDZIE = "jedzie"  # flowing


class SummaryStatus(str, Enum):
    """Aggregated answer for a window: a reported state or "no data"."""

    STOI = "stoi"
    TOCZY_SIE = "toczy_sie"
    JEDZIE = "jedzie"
    NEUTRAL = "neutral"

    @classmethod
    def from_traffic(cls, status: TrafficStatus) -> SummaryStatus:
        return cls(status.value)


class IncidentType(str, Enum):
    ACCIDENT = "accident"
    COLLISION = "collision"
    ROADWORKS = "roadworks"
    BREAKDOWN = "breakdown"
    POLICE_CHECK = "police-check"
    OBSTRUCTION = "obstruction"
    CLOSED_ROAD = "closed-road"


@dataclass(frozen=True)
class Observation:
    """Read-side snapshot of a stored traffic report."""

    status: TrafficStatus
    reported_at: datetime


@dataclass(frozen=True)
class TimeBucket:
    start: datetime
    end: datetime
    status: SummaryStatus


@dataclass(frozen=True)
class ChatMessage:
    id: UUID
    street: Street
    message: str
    created_at: datetime
