"""
Error taxonomy for ledger, staking and tournament operations.
"""


class MarketError(Exception):
    """Base class for every error raised by the simulation core."""


class ValidationError(MarketError):
    """Amount out of bounds, bad prediction type or timeframe."""


class InsufficientFundsError(MarketError):
    """Balance (or staked balance) does not cover the requested amount."""

    def __init__(self, required: float, available: float, what: str = "MemeCoins"):
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient {what}: need {required:,.2f}, have {available:,.2f}"
        )


class NotFoundError(MarketError):
    """Unknown tournament, tier, prediction or participant."""


class AlreadyParticipatingError(MarketError):
    """User already holds a leaderboard entry in the tournament."""


class CapacityExceededError(MarketError):
    """Tournament has no free participant slots."""


class InvalidStateError(MarketError):
    """Operation attempted outside its required lifecycle state."""
