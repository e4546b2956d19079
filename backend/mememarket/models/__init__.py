"""
MemeMarket Data Models
"""
from .content import ContentItem
from .market import MarketQuote, MarketSector, MarketEvent, Trend, ShockKind
from .prediction import (
    Prediction, PredictionIntent, PredictionType, PredictionStatus,
    Timeframe, MarketConditions, TimeOfDay,
)
from .portfolio import Portfolio, Achievement, LedgerEntry, LedgerCategory, StakingTier
from .tournament import Tournament, TournamentParticipant, TournamentStatus, TournamentResult
from .alert import Alert, AlertType

__all__ = [
    'ContentItem',
    'MarketQuote', 'MarketSector', 'MarketEvent', 'Trend', 'ShockKind',
    'Prediction', 'PredictionIntent', 'PredictionType', 'PredictionStatus',
    'Timeframe', 'MarketConditions', 'TimeOfDay',
    'Portfolio', 'Achievement', 'LedgerEntry', 'LedgerCategory', 'StakingTier',
    'Tournament', 'TournamentParticipant', 'TournamentStatus', 'TournamentResult',
    'Alert', 'AlertType',
]
