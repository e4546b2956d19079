"""
Tournament Models
"""
from datetime import datetime
from typing import Optional, List
from dataclasses import dataclass, field
from enum import Enum


class TournamentStatus(str, Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass
class TournamentParticipant:
    """A user's standing in one tournament."""
    user_id: str
    username: str
    points: int = 0
    rank: int = 0
    predictions: int = 0
    wins: int = 0
    joined_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def win_rate(self) -> float:
        return self.wins / self.predictions * 100 if self.predictions > 0 else 0.0

    def to_dict(self) -> dict:
        return {
            'user_id': self.user_id,
            'username': self.username,
            'points': self.points,
            'rank': self.rank,
            'predictions': self.predictions,
            'wins': self.wins,
            'win_rate': round(self.win_rate, 1),
        }


@dataclass
class Tournament:
    """Competitive pool: upcoming -> active -> completed, one way."""
    id: str
    name: str
    description: str
    start_date: datetime
    end_date: datetime
    entry_fee: float
    max_participants: int
    prize_pool: float = 0.0
    status: TournamentStatus = TournamentStatus.UPCOMING
    rules: List[str] = field(default_factory=list)
    leaderboard: List[TournamentParticipant] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        if isinstance(self.status, str):
            self.status = TournamentStatus(self.status)

    @property
    def current_participants(self) -> int:
        return len(self.leaderboard)

    @property
    def is_full(self) -> bool:
        return self.current_participants >= self.max_participants

    def get_participant(self, user_id: str) -> Optional[TournamentParticipant]:
        for participant in self.leaderboard:
            if participant.user_id == user_id:
                return participant
        return None

    def to_dict(self, include_leaderboard: bool = True) -> dict:
        result = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'start_date': self.start_date.isoformat() + 'Z',
            'end_date': self.end_date.isoformat() + 'Z',
            'entry_fee': self.entry_fee,
            'prize_pool': self.prize_pool,
            'max_participants': self.max_participants,
            'current_participants': self.current_participants,
            'status': self.status.value,
            'rules': list(self.rules),
            'completed_at': self.completed_at.isoformat() + 'Z' if self.completed_at else None,
        }
        if include_leaderboard:
            result['leaderboard'] = [p.to_dict() for p in self.leaderboard]
        return result


@dataclass
class TournamentResult:
    """Frozen outcome of an ended tournament."""
    tournament_id: str
    winners: List[TournamentParticipant]
    prizes: List[float]

    @property
    def payouts(self) -> List[tuple]:
        """(user_id, prize) pairs for the paid ranks."""
        return [(w.user_id, p) for w, p in zip(self.winners, self.prizes)]

    def to_dict(self) -> dict:
        return {
            'tournament_id': self.tournament_id,
            'winners': [w.to_dict() for w in self.winners],
            'prizes': list(self.prizes),
        }
