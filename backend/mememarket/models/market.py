"""
Quote, Sector and Market Event Models
"""
from datetime import datetime, timedelta
from typing import List, Optional
from dataclasses import dataclass, field
from enum import Enum


class Trend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class ShockKind(str, Enum):
    CRASH = "crash"
    BOOM = "boom"


def trend_between(previous: float, current: float) -> Trend:
    """Strict comparison: equal prices are stable."""
    if current > previous:
        return Trend.UP
    if current < previous:
        return Trend.DOWN
    return Trend.STABLE


@dataclass
class MarketQuote:
    """Synthetic price/volume state for one content item."""
    item_id: str
    current_price: float
    previous_price: float
    volume: int
    change_percent: float = 0.0
    trend: Trend = Trend.STABLE
    last_updated: datetime = field(default_factory=datetime.utcnow)
    ranking: Optional[int] = None

    def __post_init__(self):
        if isinstance(self.trend, str):
            self.trend = Trend(self.trend)

    def copy(self) -> 'MarketQuote':
        return MarketQuote(
            item_id=self.item_id,
            current_price=self.current_price,
            previous_price=self.previous_price,
            volume=self.volume,
            change_percent=self.change_percent,
            trend=self.trend,
            last_updated=self.last_updated,
            ranking=self.ranking,
        )

    def to_dict(self) -> dict:
        return {
            'item_id': self.item_id,
            'current_price': self.current_price,
            'previous_price': self.previous_price,
            'volume': self.volume,
            'change_percent': self.change_percent,
            'trend': self.trend.value,
            'last_updated': self.last_updated.isoformat() + 'Z',
            'ranking': self.ranking,
        }


@dataclass
class MarketSector:
    """Thematic multiplier window. One is active at a time."""
    id: str
    name: str
    multiplier: float
    description: str = ""
    keywords: List[str] = field(default_factory=list)
    active_until: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.active_until is None:
            return False
        return (now or datetime.utcnow()) >= self.active_until

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'multiplier': self.multiplier,
            'keywords': list(self.keywords),
            'active_until': self.active_until.isoformat() + 'Z' if self.active_until else None,
        }


@dataclass
class MarketEvent:
    """Record of a market-wide shock, returned for display/logging."""
    id: str
    kind: ShockKind
    title: str
    description: str
    impact: float
    duration: timedelta
    created_at: datetime = field(default_factory=datetime.utcnow)
    affected_quotes: int = 0

    def __post_init__(self):
        if isinstance(self.kind, str):
            self.kind = ShockKind(self.kind)

    @property
    def expires_at(self) -> datetime:
        return self.created_at + self.duration

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'kind': self.kind.value,
            'title': self.title,
            'description': self.description,
            'impact': self.impact,
            'duration_seconds': self.duration.total_seconds(),
            'created_at': self.created_at.isoformat() + 'Z',
            'affected_quotes': self.affected_quotes,
        }
