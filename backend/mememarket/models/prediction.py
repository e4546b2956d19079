"""
Prediction (wager) Models
"""
from datetime import datetime, timedelta
from typing import Optional
from dataclasses import dataclass, field
from enum import Enum
import uuid

from ..core.constants import PREDICTION_TIMEFRAMES
from ..core.errors import InvalidStateError


class PredictionType(str, Enum):
    GROWTH_RATE = "growth_rate"
    MILESTONE_REACH = "milestone_reach"
    RANKING_POSITION = "ranking_position"
    ENGAGEMENT_RATIO = "engagement_ratio"
    VIRALITY_INDEX = "virality_index"


class Timeframe(str, Enum):
    SHORT = "SHORT"
    MEDIUM = "MEDIUM"
    LONG = "LONG"
    EXTENDED = "EXTENDED"

    @property
    def hours(self) -> int:
        return PREDICTION_TIMEFRAMES[self.value]["hours"]

    @property
    def base_multiplier(self) -> float:
        return PREDICTION_TIMEFRAMES[self.value]["base_multiplier"]


class PredictionStatus(str, Enum):
    ACTIVE = "active"
    WON = "won"
    LOST = "lost"
    PENDING = "pending"


class TimeOfDay(str, Enum):
    PEAK = "peak"
    NORMAL = "normal"
    QUIET = "quiet"


@dataclass
class MarketConditions:
    """Snapshot of the conditions an odds quote was computed under."""
    post_age_hours: float
    current_ranking: int
    subreddit_multiplier: float
    time_of_day: TimeOfDay
    current_score: int = 0
    current_comments: int = 0
    growth_rate: float = 0.0

    def __post_init__(self):
        if isinstance(self.time_of_day, str):
            self.time_of_day = TimeOfDay(self.time_of_day)

    def to_dict(self) -> dict:
        return {
            'post_age_hours': round(self.post_age_hours, 2),
            'current_ranking': self.current_ranking,
            'subreddit_multiplier': self.subreddit_multiplier,
            'time_of_day': self.time_of_day.value,
            'current_score': self.current_score,
            'current_comments': self.current_comments,
            'growth_rate': round(self.growth_rate, 4),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'MarketConditions':
        return cls(
            post_age_hours=data.get('post_age_hours', 0.0),
            current_ranking=data.get('current_ranking', 50),
            subreddit_multiplier=data.get('subreddit_multiplier', 1.0),
            time_of_day=data.get('time_of_day', TimeOfDay.NORMAL.value),
            current_score=data.get('current_score', 0),
            current_comments=data.get('current_comments', 0),
            growth_rate=data.get('growth_rate', 0.0),
        )


@dataclass
class PredictionIntent:
    """What a user asks for when placing a bet."""
    item_id: str
    prediction_type: str
    target_value: float
    timeframe: str
    bet_amount: float


@dataclass
class Prediction:
    """A single wager. Transitions exactly once from active to won or lost."""
    id: str
    user_id: str
    item_id: str
    prediction_type: PredictionType
    target_value: float
    timeframe: Timeframe
    bet_amount: float
    odds: float
    baseline_value: float
    status: PredictionStatus = PredictionStatus.ACTIVE
    created_at: datetime = field(default_factory=datetime.utcnow)
    resolved_at: Optional[datetime] = None

    # Display metadata
    item_title: str = ""
    item_url: str = ""
    volatility_factor: float = 1.0
    market_conditions: Optional[MarketConditions] = None

    def __post_init__(self):
        if isinstance(self.prediction_type, str):
            self.prediction_type = PredictionType(self.prediction_type)
        if isinstance(self.timeframe, str):
            self.timeframe = Timeframe(self.timeframe)
        if isinstance(self.status, str):
            self.status = PredictionStatus(self.status)

    @classmethod
    def create(cls, user_id: str, intent: PredictionIntent, odds: float, baseline_value: float, **kwargs) -> 'Prediction':
        return cls(
            id=f"pred_{uuid.uuid4().hex[:12]}",
            user_id=user_id,
            item_id=intent.item_id,
            prediction_type=intent.prediction_type,
            target_value=intent.target_value,
            timeframe=intent.timeframe,
            bet_amount=intent.bet_amount,
            odds=odds,
            baseline_value=baseline_value,
            **kwargs,
        )

    @property
    def is_active(self) -> bool:
        return self.status == PredictionStatus.ACTIVE

    @property
    def is_resolved(self) -> bool:
        return self.status in (PredictionStatus.WON, PredictionStatus.LOST)

    @property
    def resolves_at(self) -> datetime:
        return self.created_at + timedelta(hours=self.timeframe.hours)

    @property
    def potential_payout(self) -> float:
        return self.bet_amount * self.odds

    @property
    def pnl(self) -> float:
        """Realized profit/loss; 0 while unresolved."""
        if self.status == PredictionStatus.WON:
            return self.bet_amount * self.odds - self.bet_amount
        if self.status == PredictionStatus.LOST:
            return -self.bet_amount
        return 0.0

    def settle(self, status: PredictionStatus, now: Optional[datetime] = None):
        """Move to a terminal state. Terminal states never change again."""
        if not self.is_active:
            raise InvalidStateError(f"Prediction {self.id} already {self.status.value}")
        if status not in (PredictionStatus.WON, PredictionStatus.LOST):
            raise InvalidStateError(f"Cannot settle prediction as {status.value}")
        self.status = status
        self.resolved_at = now or datetime.utcnow()

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'item_id': self.item_id,
            'prediction_type': self.prediction_type.value,
            'target_value': self.target_value,
            'timeframe': self.timeframe.value,
            'bet_amount': self.bet_amount,
            'odds': self.odds,
            'baseline_value': self.baseline_value,
            'status': self.status.value,
            'created_at': self.created_at.isoformat() + 'Z',
            'resolved_at': self.resolved_at.isoformat() + 'Z' if self.resolved_at else None,
            'item_title': self.item_title,
            'item_url': self.item_url,
            'volatility_factor': self.volatility_factor,
            'market_conditions': self.market_conditions.to_dict() if self.market_conditions else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Prediction':
        conditions = data.get('market_conditions')
        resolved_at = data.get('resolved_at')
        return cls(
            id=data['id'],
            user_id=data['user_id'],
            item_id=data['item_id'],
            prediction_type=data['prediction_type'],
            target_value=data['target_value'],
            timeframe=data['timeframe'],
            bet_amount=data['bet_amount'],
            odds=data['odds'],
            baseline_value=data.get('baseline_value', 0.0),
            status=data.get('status', PredictionStatus.ACTIVE.value),
            created_at=datetime.fromisoformat(data['created_at'].replace('Z', '')),
            resolved_at=datetime.fromisoformat(resolved_at.replace('Z', '')) if resolved_at else None,
            item_title=data.get('item_title', ''),
            item_url=data.get('item_url', ''),
            volatility_factor=data.get('volatility_factor', 1.0),
            market_conditions=MarketConditions.from_dict(conditions) if conditions else None,
        )
