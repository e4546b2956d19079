"""
Alert Models
"""
from datetime import datetime
from typing import Optional
from dataclasses import dataclass, field
from enum import Enum


class AlertType(str, Enum):
    EXPIRING_BET = "expiring_bet"
    MARKET_OPPORTUNITY = "market_opportunity"
    ACHIEVEMENT = "achievement"
    STAKING_REWARD = "staking_reward"
    TOURNAMENT = "tournament"


@dataclass
class Alert:
    """A derived notification for one user."""
    id: str
    user_id: str
    type: AlertType
    title: str
    message: str
    key: str  # Deduplication key
    created_at: datetime = field(default_factory=datetime.utcnow)
    read: bool = False
    action_url: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.type, str):
            self.type = AlertType(self.type)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'type': self.type.value,
            'title': self.title,
            'message': self.message,
            'created_at': self.created_at.isoformat() + 'Z',
            'read': self.read,
            'action_url': self.action_url,
        }
