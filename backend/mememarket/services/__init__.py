"""
MemeMarket Services
"""
from .market_engine import MarketEngine, MarketConfig
from .prediction_engine import PredictionEngine, OddsConfig
from .ledger_service import LedgerService, LedgerConfig, level_for
from .staking_service import StakingService, StakingConfig
from .tournament_service import TournamentService, TournamentConfig
from .analytics_service import AnalyticsService, AnalyticsConfig
from .alert_service import AlertService, AlertConfig
from .content_provider import ContentProvider, RedditContentProvider, StaticContentProvider
from .portfolio_store import PortfolioStore, InMemoryKeyValueStore, JsonFileKeyValueStore
from .scheduler import MarketScheduler

__all__ = [
    'MarketEngine', 'MarketConfig',
    'PredictionEngine', 'OddsConfig',
    'LedgerService', 'LedgerConfig', 'level_for',
    'StakingService', 'StakingConfig',
    'TournamentService', 'TournamentConfig',
    'AnalyticsService', 'AnalyticsConfig',
    'AlertService', 'AlertConfig',
    'ContentProvider', 'RedditContentProvider', 'StaticContentProvider',
    'PortfolioStore', 'InMemoryKeyValueStore', 'JsonFileKeyValueStore',
    'MarketScheduler',
]
