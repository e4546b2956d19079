"""
Portfolio, Ledger and Achievement Models
"""
from datetime import datetime
from typing import Optional, List
from dataclasses import dataclass, field
from enum import Enum

from .prediction import Prediction, PredictionStatus


def _ts(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() + 'Z' if value else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value.replace('Z', '')) if value else None


class LedgerCategory(str, Enum):
    """Every balance movement is tagged with exactly one category."""
    INITIAL = "initial"
    WAGER = "wager"
    WINNINGS = "winnings"
    DAILY_REWARD = "daily_reward"
    ACHIEVEMENT = "achievement"
    LEVEL_UP = "level_up"
    STREAK_BONUS = "streak_bonus"
    STAKE = "stake"
    UNSTAKE = "unstake"
    STAKING_REWARD = "staking_reward"
    TOURNAMENT_FEE = "tournament_fee"
    TOURNAMENT_PRIZE = "tournament_prize"


@dataclass
class LedgerEntry:
    """One signed balance movement."""
    category: LedgerCategory
    amount: float
    balance_after: float
    created_at: datetime = field(default_factory=datetime.utcnow)
    reference: Optional[str] = None
    note: str = ""

    def __post_init__(self):
        if isinstance(self.category, str):
            self.category = LedgerCategory(self.category)

    def to_dict(self) -> dict:
        return {
            'category': self.category.value,
            'amount': self.amount,
            'balance_after': self.balance_after,
            'created_at': _ts(self.created_at),
            'reference': self.reference,
            'note': self.note,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'LedgerEntry':
        return cls(
            category=data['category'],
            amount=data['amount'],
            balance_after=data.get('balance_after', 0.0),
            created_at=_parse(data.get('created_at')) or datetime.utcnow(),
            reference=data.get('reference'),
            note=data.get('note', ''),
        )


@dataclass
class Achievement:
    """An unlocked milestone. Never revoked."""
    id: str
    name: str
    description: str
    rarity: str
    reward: float
    unlocked_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'rarity': self.rarity,
            'reward': self.reward,
            'unlocked_at': _ts(self.unlocked_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Achievement':
        return cls(
            id=data['id'],
            name=data.get('name', data['id']),
            description=data.get('description', ''),
            rarity=data.get('rarity', 'common'),
            reward=data.get('reward', 0.0),
            unlocked_at=_parse(data.get('unlocked_at')) or datetime.utcnow(),
        )


@dataclass
class Portfolio:
    """
    A user's economic ledger.

    Mutated only through LedgerService, StakingService and TournamentService.
    """
    user_id: str
    balance: float = 1000.0
    initial_balance: float = 1000.0

    predictions: List[Prediction] = field(default_factory=list)
    achievements: List[Achievement] = field(default_factory=list)
    ledger: List[LedgerEntry] = field(default_factory=list)

    # Progression
    experience: int = 0
    level: int = 1
    consecutive_wins: int = 0
    consecutive_losses: int = 0
    best_win_streak: int = 0
    best_win: float = 0.0

    # Staking
    staked_balance: float = 0.0
    staking_rewards_accrued: float = 0.0
    last_staking_claim: Optional[datetime] = None

    # Tournaments
    tournament_points: int = 0
    current_tournament_id: Optional[str] = None

    # Rewards
    last_daily_reward: Optional[datetime] = None

    # Daily snapshots kept by the analytics service
    performance_history: List[dict] = field(default_factory=list)

    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def active_predictions(self) -> List[Prediction]:
        return [p for p in self.predictions if p.status == PredictionStatus.ACTIVE]

    @property
    def resolved_predictions(self) -> List[Prediction]:
        return [p for p in self.predictions if p.is_resolved]

    @property
    def total_predictions(self) -> int:
        return len(self.predictions)

    @property
    def wins(self) -> int:
        return sum(1 for p in self.predictions if p.status == PredictionStatus.WON)

    @property
    def losses(self) -> int:
        return sum(1 for p in self.predictions if p.status == PredictionStatus.LOST)

    @property
    def win_rate(self) -> float:
        """Percentage of resolved predictions that won."""
        resolved = self.wins + self.losses
        return self.wins / resolved * 100 if resolved > 0 else 0.0

    def has_achievement(self, achievement_id: str) -> bool:
        return any(a.id == achievement_id for a in self.achievements)

    def get_prediction(self, prediction_id: str) -> Optional[Prediction]:
        for prediction in self.predictions:
            if prediction.id == prediction_id:
                return prediction
        return None

    def to_dict(self) -> dict:
        return {
            'user_id': self.user_id,
            'balance': self.balance,
            'initial_balance': self.initial_balance,
            'predictions': [p.to_dict() for p in self.predictions],
            'achievements': [a.to_dict() for a in self.achievements],
            'ledger': [e.to_dict() for e in self.ledger],
            'experience': self.experience,
            'level': self.level,
            'consecutive_wins': self.consecutive_wins,
            'consecutive_losses': self.consecutive_losses,
            'best_win_streak': self.best_win_streak,
            'best_win': self.best_win,
            'staked_balance': self.staked_balance,
            'staking_rewards_accrued': self.staking_rewards_accrued,
            'last_staking_claim': _ts(self.last_staking_claim),
            'tournament_points': self.tournament_points,
            'current_tournament_id': self.current_tournament_id,
            'last_daily_reward': _ts(self.last_daily_reward),
            'performance_history': list(self.performance_history),
            'created_at': _ts(self.created_at),
        }

    def to_summary(self) -> dict:
        """Compact view for API listings."""
        return {
            'user_id': self.user_id,
            'balance': round(self.balance, 2),
            'level': self.level,
            'experience': self.experience,
            'total_predictions': self.total_predictions,
            'active_predictions': len(self.active_predictions),
            'win_rate': round(self.win_rate, 1),
            'consecutive_wins': self.consecutive_wins,
            'staked_balance': round(self.staked_balance, 2),
            'achievements': len(self.achievements),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Portfolio':
        return cls(
            user_id=data['user_id'],
            balance=data.get('balance', 1000.0),
            initial_balance=data.get('initial_balance', 1000.0),
            predictions=[Prediction.from_dict(p) for p in data.get('predictions', [])],
            achievements=[Achievement.from_dict(a) for a in data.get('achievements', [])],
            ledger=[LedgerEntry.from_dict(e) for e in data.get('ledger', [])],
            experience=data.get('experience', 0),
            level=data.get('level', 1),
            consecutive_wins=data.get('consecutive_wins', 0),
            consecutive_losses=data.get('consecutive_losses', 0),
            best_win_streak=data.get('best_win_streak', 0),
            best_win=data.get('best_win', 0.0),
            staked_balance=data.get('staked_balance', 0.0),
            staking_rewards_accrued=data.get('staking_rewards_accrued', 0.0),
            last_staking_claim=_parse(data.get('last_staking_claim')),
            tournament_points=data.get('tournament_points', 0),
            current_tournament_id=data.get('current_tournament_id'),
            last_daily_reward=_parse(data.get('last_daily_reward')),
            performance_history=list(data.get('performance_history', [])),
            created_at=_parse(data.get('created_at')) or datetime.utcnow(),
        )


@dataclass
class StakingTier:
    """APR bracket selected by the staked amount."""
    name: str
    min_amount: float
    max_amount: float
    apr: float

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'min_amount': self.min_amount,
            'max_amount': None if self.max_amount == float('inf') else self.max_amount,
            'apr': self.apr,
        }
