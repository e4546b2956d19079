"""
MemeMarket Simulation Engine

Virtual prediction market over trending social content: simulated prices,
odds-based wagers, staking yield, tournaments and analytics.
"""
__version__ = "1.0.0"

from .context import AppContext
from .core.config import Settings, get_settings

__all__ = ['AppContext', 'Settings', 'get_settings', '__version__']
